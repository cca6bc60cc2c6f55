"""
Unit tests for the delivery coordinator retry state machine
"""

import logging
import pytest
from datetime import datetime, timezone
from ingestion.coordinator import DeliveryCoordinator, DeliveryState, retry_delay_ms
from schemas.events import Batch


def _coordinator(executor, scheduler):
    return DeliveryCoordinator(executor=executor, scheduler=scheduler, table_name="public.events")


class TestDeliver:

    @pytest.mark.asyncio
    async def test_success_is_delivered(self, executor, scheduler, make_row):
        coordinator = _coordinator(executor, scheduler)
        batch = Batch.from_rows([make_row(0), make_row(1)])

        state = await coordinator.deliver(batch)

        assert state == DeliveryState.DELIVERED
        assert len(executor.calls) == 1
        assert scheduler.jobs == []
        assert coordinator.state_of(batch.batch_id) == DeliveryState.DELIVERED
        assert coordinator.stats()["events_delivered"] == 2

    @pytest.mark.asyncio
    async def test_first_failure_schedules_retry_after_3s(self, make_executor, scheduler, make_row):
        executor = make_executor(failures=1)
        coordinator = _coordinator(executor, scheduler)
        batch = Batch.from_rows([make_row(0)])

        state = await coordinator.deliver(batch)

        assert state == DeliveryState.AWAITING_RETRY
        assert len(scheduler.jobs) == 1
        delay_ms, job, args, job_id = scheduler.jobs[0]
        assert delay_ms == 3000
        assert job == coordinator.deliver
        retried = args[0]
        assert retried.retries == 1
        assert retried.batch_id == batch.batch_id
        assert retried.rows == batch.rows
        assert batch.retries == 0
        assert job_id == f"retry-{batch.batch_id}-1"

    @pytest.mark.asyncio
    async def test_retry_fires_and_delivers(self, make_executor, scheduler, make_row):
        executor = make_executor(failures=2)
        coordinator = _coordinator(executor, scheduler)
        batch = Batch.from_rows([make_row(0)])

        await coordinator.deliver(batch)
        assert await scheduler.fire_next() == DeliveryState.AWAITING_RETRY
        assert scheduler.jobs[0][0] == 6000
        assert await scheduler.fire_next() == DeliveryState.DELIVERED

        assert len(executor.calls) == 3
        # every attempt submits the same statement and values
        assert executor.calls[0] == executor.calls[2]
        assert coordinator.stats()["retries_scheduled"] == 2

    @pytest.mark.asyncio
    async def test_ceiling_abandons_without_scheduling(self, make_executor, scheduler, make_row, caplog):
        executor = make_executor(failures=1)
        coordinator = _coordinator(executor, scheduler)
        batch = Batch(rows=(make_row(0),), retries=15)

        with caplog.at_level(logging.ERROR, logger="ingestion.coordinator"):
            state = await coordinator.deliver(batch)

        assert state == DeliveryState.ABANDONED
        assert scheduler.jobs == []
        assert len(executor.calls) == 1
        assert coordinator.stats()["batches_abandoned"] == 1
        assert batch.batch_id in caplog.text

    @pytest.mark.asyncio
    async def test_fourteen_retries_still_schedules(self, make_executor, scheduler, make_row):
        executor = make_executor(failures=1)
        coordinator = _coordinator(executor, scheduler)

        state = await coordinator.deliver(Batch(rows=(make_row(0),), retries=14))

        assert state == DeliveryState.AWAITING_RETRY
        assert scheduler.jobs[0][0] == 3000 * 2 ** 14
        assert scheduler.jobs[0][2][0].retries == 15

    @pytest.mark.asyncio
    async def test_full_retry_chain_ends_abandoned(self, make_executor, scheduler, make_row):
        executor = make_executor(failures=100)
        coordinator = _coordinator(executor, scheduler)

        state = await coordinator.deliver(Batch.from_rows([make_row(0)]))
        while scheduler.jobs:
            state = await scheduler.fire_next()

        assert state == DeliveryState.ABANDONED
        # the first attempt plus 15 retries
        assert len(executor.calls) == 16
        assert coordinator.stats()["retries_scheduled"] == 15

    @pytest.mark.asyncio
    async def test_duplicate_firing_is_ignored(self, make_executor, scheduler, make_row):
        executor = make_executor(failures=1)
        coordinator = _coordinator(executor, scheduler)

        await coordinator.deliver(Batch.from_rows([make_row(0)]))
        _, job, args, _ = scheduler.jobs.pop(0)

        assert await job(*args) == DeliveryState.DELIVERED
        assert await job(*args) is None
        assert len(executor.calls) == 2
        assert coordinator.stats()["duplicates_ignored"] == 1

    @pytest.mark.asyncio
    async def test_scheduler_failure_abandons(self, make_executor, make_row):
        class BrokenScheduler:
            def schedule_after(self, delay_ms, job, *args, job_id=None):
                raise RuntimeError("scheduler is shut down")

        coordinator = _coordinator(make_executor(failures=1), BrokenScheduler())

        state = await coordinator.deliver(Batch.from_rows([make_row(0)]))

        assert state == DeliveryState.ABANDONED

    @pytest.mark.asyncio
    async def test_statement_targets_table(self, executor, scheduler, make_row):
        coordinator = _coordinator(executor, scheduler)

        await coordinator.deliver(Batch.from_rows([make_row(0)]))

        statement, values = executor.calls[0]
        assert statement.startswith("INSERT INTO public.events (")
        assert len(values) == 11

    @pytest.mark.asyncio
    async def test_timestamp_bound_as_datetime(self, executor, scheduler, make_row):
        coordinator = _coordinator(executor, scheduler)

        await coordinator.deliver(Batch.from_rows([make_row(0)]))

        _, values = executor.calls[0]
        assert isinstance(values[10], datetime)
        assert values[10] == datetime(2022, 8, 18, 15, 42, 32, 597000, tzinfo=timezone.utc)
        assert values[0] == "uuid-0"


@pytest.mark.parametrize("retries, expected", [(0, 3000), (1, 6000), (2, 12000), (14, 49152000)])
def test_retry_delay(retries, expected):
    assert retry_delay_ms(retries) == expected
