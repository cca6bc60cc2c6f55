"""
Delivery Coordinator - submits batches and drives the retry state machine.

A batch attempt moves PENDING -> SUBMITTED and ends DELIVERED,
AWAITING_RETRY (a delayed job will submit the next attempt) or
ABANDONED (retry ceiling reached, batch dropped and logged).

Retries are never slept on: a failed attempt hands a new Batch with
``retries + 1`` to the scheduler and returns immediately.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
import enum
import logging

from core.exceptions import DeliveryError
from ingestion.loaders.redshift_loader import QueryExecutor
from ingestion.loaders.statement_builder import InsertStatementBuilder
from schemas.events import Batch

logger = logging.getLogger(__name__)

MAX_RETRIES = 15
BASE_RETRY_DELAY_MS = 3000
HISTORY_SIZE = 10_000


class DeliveryState(str, enum.Enum):
    """Lifecycle of one batch attempt"""
    PENDING = "pending"
    SUBMITTED = "submitted"
    DELIVERED = "delivered"
    AWAITING_RETRY = "awaiting_retry"
    ABANDONED = "abandoned"


class JobScheduler(Protocol):
    def schedule_after(
        self,
        delay_ms: int,
        job: Callable[..., Any],
        *args: Any,
        job_id: Optional[str] = None
    ) -> None: ...


def retry_delay_ms(retries: int, base_delay_ms: int = BASE_RETRY_DELAY_MS) -> int:
    """3s, 6s, 12s, ... doubling with every retry already performed"""
    return base_delay_ms * 2 ** retries


class DeliveryCoordinator:
    """
    Owns delivery of flushed batches to one table.

    Responsibilities:
    - Build the INSERT and submit it through the executor, once per attempt
    - Schedule the next attempt with exponential backoff on any failure
    - Abandon the batch once ``max_retries`` retries have failed
    - Ignore a delayed job that fires again for an attempt already started
    """

    def __init__(
        self,
        executor: QueryExecutor,
        scheduler: JobScheduler,
        table_name: str,
        statement_builder: Optional[InsertStatementBuilder] = None,
        max_retries: int = MAX_RETRIES,
        base_delay_ms: int = BASE_RETRY_DELAY_MS
    ):
        self.executor = executor
        self.scheduler = scheduler
        self.table_name = table_name
        self.statement_builder = statement_builder or InsertStatementBuilder()
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms

        # batch_id -> (latest attempt started, its state); bounded
        self._history: "OrderedDict[str, Tuple[int, DeliveryState]]" = OrderedDict()
        self._stats: Dict[str, int] = {
            "batches_delivered": 0,
            "events_delivered": 0,
            "retries_scheduled": 0,
            "batches_abandoned": 0,
            "events_abandoned": 0,
            "duplicates_ignored": 0,
        }

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def state_of(self, batch_id: str) -> Optional[DeliveryState]:
        entry = self._history.get(batch_id)
        return entry[1] if entry else None

    def _set_state(self, batch: Batch, state: DeliveryState) -> None:
        self._history[batch.batch_id] = (batch.retries, state)
        self._history.move_to_end(batch.batch_id)
        while len(self._history) > HISTORY_SIZE:
            self._history.popitem(last=False)

    def _already_started(self, batch: Batch) -> bool:
        entry = self._history.get(batch.batch_id)
        return entry is not None and entry[0] >= batch.retries

    async def deliver(self, batch: Batch) -> Optional[DeliveryState]:
        """
        Submit one attempt of ``batch``.

        Returns:
            The state the attempt ended in, or None if this attempt had
            already been started by an earlier firing of the same job.
        """
        if self._already_started(batch):
            self._stats["duplicates_ignored"] += 1
            logger.warning(
                f"Ignoring duplicate delivery of batch {batch.batch_id} "
                f"(retry {batch.retries})"
            )
            return None

        statement, values = self.statement_builder.build(batch.rows, self.table_name)

        logger.info(
            f"Flushing {batch.size} event{'s' if batch.size != 1 else ''} to Redshift "
            f"(batch={batch.batch_id}, retries={batch.retries})"
        )
        self._set_state(batch, DeliveryState.SUBMITTED)

        try:
            await self.executor.execute(statement, self.statement_builder.driver_values(values))
        except Exception as e:
            return self._handle_failure(batch, e)

        self._set_state(batch, DeliveryState.DELIVERED)
        self._stats["batches_delivered"] += 1
        self._stats["events_delivered"] += batch.size
        logger.info(f"Delivered batch {batch.batch_id} ({batch.size} events)")
        return DeliveryState.DELIVERED

    def _handle_failure(self, batch: Batch, error: Exception) -> DeliveryState:
        context = {
            "batch_id": batch.batch_id,
            "batch_size": batch.size,
            "table_name": self.table_name,
        }

        if batch.retries >= self.max_retries:
            return self._abandon(
                batch,
                DeliveryError(
                    "Retries exhausted, dropping batch",
                    context=context,
                    original_exception=error,
                    attempt=batch.retries
                )
            )

        delay_ms = retry_delay_ms(batch.retries, self.base_delay_ms)
        delivery_error = DeliveryError(
            "Error uploading to Redshift",
            context=context,
            original_exception=error,
            attempt=batch.retries,
            retry_delay_ms=delay_ms
        )
        next_batch = batch.next_attempt()

        try:
            self.scheduler.schedule_after(
                delay_ms,
                self.deliver,
                next_batch,
                job_id=f"retry-{batch.batch_id}-{next_batch.retries}"
            )
        except Exception as e:
            logger.exception(f"Could not schedule retry for batch {batch.batch_id}")
            return self._abandon(
                batch,
                DeliveryError(
                    "Retry scheduling failed, dropping batch",
                    context=context,
                    original_exception=e,
                    attempt=batch.retries
                )
            )

        self._set_state(batch, DeliveryState.AWAITING_RETRY)
        self._stats["retries_scheduled"] += 1
        logger.warning(
            f"Error uploading batch {batch.batch_id} ({batch.size} events): {error}. "
            f"Retry {next_batch.retries}/{self.max_retries} in {delay_ms / 1000:g}s",
            extra={"error_context": delivery_error.to_dict()}
        )
        return DeliveryState.AWAITING_RETRY

    def _abandon(self, batch: Batch, error: DeliveryError) -> DeliveryState:
        self._set_state(batch, DeliveryState.ABANDONED)
        self._stats["batches_abandoned"] += 1
        self._stats["events_abandoned"] += batch.size
        logger.error(
            f"Abandoning batch {batch.batch_id} of {batch.size} events "
            f"after {batch.retries} retries: {error.message}",
            extra={"error_context": error.to_dict()}
        )
        return DeliveryState.ABANDONED
