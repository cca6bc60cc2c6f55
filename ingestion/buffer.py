"""
Size- and time-bounded buffer of normalized rows
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Set

from schemas.events import NormalizedRow

logger = logging.getLogger(__name__)

FlushHandler = Callable[[List[NormalizedRow]], Awaitable[None]]


class BatchBuffer:
    """
    Accumulates rows for one destination table and hands them off in batches.

    A flush happens when the accumulated byte size reaches ``byte_limit``,
    when ``time_window`` seconds have passed since the buffer went from
    empty to non-empty, or when ``flush()`` is called. Deciding to flush and
    swapping out the pending rows happen under one lock, so a snapshot is
    handed to the handler exactly once.

    Automatic flushes run the handler as a background task; ``add`` never
    waits on delivery.
    """

    def __init__(
        self,
        on_flush: FlushHandler,
        byte_limit: int,
        time_window: float,
        clock: Callable[[], float] = time.monotonic
    ):
        if byte_limit <= 0:
            raise ValueError("byte_limit must be positive")
        if time_window <= 0:
            raise ValueError("time_window must be positive")

        self.on_flush = on_flush
        self.byte_limit = byte_limit
        self.time_window = time_window
        self._clock = clock

        self._lock = asyncio.Lock()
        self._rows: List[NormalizedRow] = []
        self._size = 0
        self._deadline: Optional[float] = None
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._rows)

    @property
    def pending_bytes(self) -> int:
        return self._size

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def in_flight(self) -> int:
        """Background flushes whose handler has not finished yet"""
        return len(self._tasks)

    def _is_due(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def _take_snapshot_locked(self) -> List[NormalizedRow]:
        """Must be called while holding self._lock."""
        snapshot = self._rows
        self._rows = []
        self._size = 0
        self._deadline = None
        return snapshot

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def add(self, row: NormalizedRow) -> None:
        """Append a row, flushing first and/or after as the limits require."""
        row_size = row.byte_size()
        snapshots = []

        async with self._lock:
            # Keep the accumulated size within the limit: ship what we have
            # when the window is over or this row would overflow it.
            if self._rows and (self._is_due() or self._size + row_size > self.byte_limit):
                snapshots.append(self._take_snapshot_locked())

            if not self._rows:
                self._deadline = self._clock() + self.time_window

            self._rows.append(row)
            self._size += row_size

            if self._size >= self.byte_limit:
                snapshots.append(self._take_snapshot_locked())

        for snapshot in snapshots:
            self._dispatch(snapshot)

    async def flush_if_due(self) -> bool:
        """Timer hook: flush when the window deadline has passed."""
        async with self._lock:
            if not self._rows or not self._is_due():
                return False
            snapshot = self._take_snapshot_locked()

        self._dispatch(snapshot)
        return True

    async def flush(self) -> None:
        """Flush unconditionally and wait for the handler; no-op when empty."""
        async with self._lock:
            if not self._rows:
                return
            snapshot = self._take_snapshot_locked()

        await self._run_handler(snapshot)

    async def drain(self) -> None:
        """Wait for every background flush started so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dispatch(self, snapshot: List[NormalizedRow]) -> None:
        task = asyncio.create_task(self._run_handler(snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, snapshot: List[NormalizedRow]) -> None:
        logger.debug(f"Buffer flushing {len(snapshot)} rows")
        try:
            await self.on_flush(snapshot)
        except Exception:
            logger.exception(f"Flush handler failed for {len(snapshot)} rows")
