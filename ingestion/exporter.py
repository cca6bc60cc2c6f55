"""
Export context - one configured destination table and everything that feeds it.

EventExporter owns the normalizer, buffer, coordinator, scheduler and
executor for a single table. Hosts (the FastAPI app, the scripts) create
one, call ``setup()`` before sending events, ``export_events()`` for every
incoming chunk and ``teardown()`` on shutdown.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union
import logging

from pydantic import ValidationError

from core.config import PropertiesDataType, Settings
from core.database import create_warehouse_engine
from core.exceptions import InvalidEventError, NormalizationError
from ingestion.bootstrap import bootstrap_table, qualified_table_name
from ingestion.buffer import BatchBuffer
from ingestion.coordinator import DeliveryCoordinator, JobScheduler
from ingestion.loaders.redshift_loader import QueryExecutor, RedshiftExecutor
from ingestion.loaders.statement_builder import InsertStatementBuilder
from ingestion.scheduler import ExportScheduler
from ingestion.transformers.normalizer import EventNormalizer
from schemas.events import Batch, NormalizedRow, RawEvent

logger = logging.getLogger(__name__)

BUFFER_TIMER_JOB_ID = "buffer_deadline_check"
BUFFER_TIMER_SECONDS = 1


@dataclass
class ExportResult:
    accepted: int = 0
    ignored: int = 0
    rejected: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


class EventExporter:
    """
    Explicitly owned export context for one destination table.

    Attributes:
        table_name: Sanitized, schema-qualified destination
        ignored_events: Event names dropped before normalization
    """

    def __init__(
        self,
        executor: QueryExecutor,
        scheduler: JobScheduler,
        schema: str = "public",
        table: str = "posthog_event",
        byte_limit: int = 1024 * 1024,
        time_window: float = 30,
        ignored_events: Optional[Set[str]] = None,
        properties_data_type: PropertiesDataType = PropertiesDataType.VARCHAR
    ):
        self.executor = executor
        self.scheduler = scheduler
        self.schema = schema
        self.properties_data_type = PropertiesDataType(properties_data_type)
        self.table_name = qualified_table_name(schema, table)
        self.ignored_events = set(ignored_events or ())

        self.normalizer = EventNormalizer()
        self.coordinator = DeliveryCoordinator(
            executor=executor,
            scheduler=scheduler,
            table_name=self.table_name,
            statement_builder=InsertStatementBuilder(self.properties_data_type),
        )
        self.buffer = BatchBuffer(
            on_flush=self._handle_flush,
            byte_limit=byte_limit,
            time_window=time_window,
        )
        self._raw_table = table
        self.ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "EventExporter":
        """Wire the real Redshift executor and APScheduler scheduler"""
        return cls(
            executor=RedshiftExecutor(create_warehouse_engine(settings)),
            scheduler=ExportScheduler(),
            schema=settings.DB_SCHEMA,
            table=settings.TABLE_NAME,
            byte_limit=settings.byte_limit,
            time_window=settings.UPLOAD_SECONDS,
            ignored_events=settings.ignored_events,
            properties_data_type=settings.PROPERTIES_DATA_TYPE,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """
        Create the destination table and start the timers.

        Raises:
            ConfigurationError: If the table name sanitizes to nothing
            ConnectivityError: If the table cannot be created
        """
        self.table_name = await bootstrap_table(
            self.executor,
            self.schema,
            self._raw_table,
            self.properties_data_type
        )
        self.coordinator.table_name = self.table_name

        if isinstance(self.scheduler, ExportScheduler):
            self.scheduler.add_interval(
                self.buffer.flush_if_due,
                seconds=BUFFER_TIMER_SECONDS,
                job_id=BUFFER_TIMER_JOB_ID
            )
            self.scheduler.start()

        self.ready = True
        logger.info(
            f"Exporter ready for {self.table_name} "
            f"(ignoring: {', '.join(sorted(self.ignored_events)) or 'nothing'})"
        )

    async def teardown(self) -> None:
        """Best-effort final flush, then release the scheduler and engine"""
        logger.info(f"Tearing down exporter for {self.table_name}")
        await self.buffer.flush()
        await self.buffer.drain()

        if isinstance(self.scheduler, ExportScheduler):
            self.scheduler.stop()
        if isinstance(self.executor, RedshiftExecutor):
            await self.executor.dispose()
        self.ready = False

    # ------------------------------------------------------------------
    # Event flow
    # ------------------------------------------------------------------

    async def export_events(self, events: Iterable[Union[RawEvent, Dict[str, Any]]]) -> ExportResult:
        """
        Filter, normalize and buffer a chunk of events.

        Events without a usable timestamp are rejected and logged; they
        never stop the rest of the chunk.
        """
        result = ExportResult()

        for raw in events:
            try:
                event = self._validate(raw)

                if event.event in self.ignored_events:
                    result.ignored += 1
                    continue

                row = self.normalizer.normalize(event)
            except NormalizationError as e:
                result.rejected += 1
                result.errors.append(e.to_dict())
                logger.warning(
                    f"Skipping event {e.context.get('uuid')}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                continue

            await self.buffer.add(row)
            result.accepted += 1

        logger.debug(
            f"Export chunk: accepted={result.accepted}, "
            f"ignored={result.ignored}, rejected={result.rejected}"
        )
        return result

    @staticmethod
    def _validate(raw: Union[RawEvent, Dict[str, Any]]) -> RawEvent:
        if isinstance(raw, RawEvent):
            return raw
        try:
            return RawEvent.model_validate(raw)
        except ValidationError as e:
            raise InvalidEventError(
                "Event does not match the event schema",
                context={
                    "uuid": raw.get("uuid") if isinstance(raw, dict) else None,
                    "fields": {
                        ".".join(str(part) for part in error["loc"]): error["msg"]
                        for error in e.errors()
                    },
                },
                original_exception=e
            )

    async def flush(self) -> None:
        await self.buffer.flush()

    async def _handle_flush(self, rows: List[NormalizedRow]) -> None:
        await self.coordinator.deliver(Batch.from_rows(rows))

    def status(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "table_name": self.table_name,
            "buffered_events": self.buffer.pending_count,
            "buffered_bytes": self.buffer.pending_bytes,
            "byte_limit": self.buffer.byte_limit,
            "time_window_seconds": self.buffer.time_window,
            "flushes_in_flight": self.buffer.in_flight,
            "scheduler_running": getattr(self.scheduler, "running", None),
        }
