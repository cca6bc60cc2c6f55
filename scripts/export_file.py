"""
Script to export a JSON-lines file of events through the full pipeline
"""

import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import load_settings
from core.exceptions import ExportException
from core.logging import setup_logging
from ingestion.exporter import EventExporter

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500


def read_events(path: str):
    """Yield one event dict per non-empty line"""
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {line_number}: {e}")


async def export_file(path: str):
    """Export every event in ``path``, then force the final flush"""
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)

    exporter = EventExporter.from_settings(settings)
    await exporter.setup()

    totals = {"accepted": 0, "ignored": 0, "rejected": 0}
    chunk = []

    try:
        for event in read_events(path):
            chunk.append(event)
            if len(chunk) >= CHUNK_SIZE:
                result = await exporter.export_events(chunk)
                chunk = []
                totals["accepted"] += result.accepted
                totals["ignored"] += result.ignored
                totals["rejected"] += result.rejected

        if chunk:
            result = await exporter.export_events(chunk)
            totals["accepted"] += result.accepted
            totals["ignored"] += result.ignored
            totals["rejected"] += result.rejected
    finally:
        await exporter.teardown()

    logger.info(
        f"Export finished for {path}: "
        f"Accepted={totals['accepted']}, Ignored={totals['ignored']}, Rejected={totals['rejected']}"
    )
    return totals


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python scripts/export_file.py EVENTS.jsonl", file=sys.stderr)
        sys.exit(2)

    try:
        asyncio.run(export_file(sys.argv[1]))
    except ExportException as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
