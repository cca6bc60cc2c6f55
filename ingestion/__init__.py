"""
Export pipeline components: events in, Redshift batches out.

Modules:
    exporter: Export context owning one destination table
    buffer: Size- and time-bounded row buffer
    coordinator: Delivery and retry state machine
    bootstrap: Identifier sanitizing and CREATE TABLE IF NOT EXISTS
    scheduler: APScheduler wrapper for retries and the buffer timer

Subpackages:
    transformers: Event normalization into the warehouse row shape
    loaders: INSERT statement builder and the Redshift query executor

Architecture:
    raw event -> EventNormalizer -> BatchBuffer.add
    buffer flush -> DeliveryCoordinator.deliver -> InsertStatementBuilder
    -> RedshiftExecutor; on failure the coordinator schedules the same
    rows again with exponential backoff (3s doubling, 15 retries max).

    Delivery is at-least-once: a batch that fails after the warehouse
    committed it may be inserted again on retry.

Usage:
    from ingestion.exporter import EventExporter

Example:
    exporter = EventExporter.from_settings(load_settings())
    await exporter.setup()
    await exporter.export_events(events)
    await exporter.teardown()
"""

__all__ = [
    "EventExporter",
    "EventNormalizer",
    "BatchBuffer",
    "DeliveryCoordinator",
    "DeliveryState",
    "InsertStatementBuilder",
    "RedshiftExecutor",
    "ExportScheduler",
    "sanitize_identifier",
    "bootstrap_table",
]
