"""
Tests for the sheet sync scheduler - timers, manual triggers, status, persistence.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from clientsync.errors import StoreConnectionError, SyncInProgressError
from clientsync.schemas.sync import SyncKind, SyncResult
from clientsync.utils.logging import get_correlation_id, set_correlation_id
from clientsync.workers.sheet_sync import SyncScheduler


def _make_engine(result=None, side_effect=None):
    engine = MagicMock()
    engine.is_running = False
    for name in ("full_sync", "import_from_sheet", "export_to_sheet"):
        if side_effect is not None:
            setattr(engine, name, AsyncMock(side_effect=side_effect))
        else:
            setattr(engine, name, AsyncMock(return_value=result or SyncResult().finish()))
    return engine


def _make_clients(last=None):
    clients = MagicMock()
    clients.record_sync_pass = AsyncMock()
    clients.last_sync_pass = AsyncMock(return_value=last)
    return clients


@pytest.fixture(autouse=True)
def no_heartbeat():
    with patch("clientsync.workers.sheet_sync._heartbeat", new_callable=AsyncMock) as mock:
        yield mock


# ---------------------------------------------------------------------------
# run_pass
# ---------------------------------------------------------------------------


class TestRunPass:
    async def test_success_records_and_notifies(self, dispatcher, no_heartbeat):
        engine = _make_engine(SyncResult(imported=2).finish())
        clients = _make_clients()
        scheduler = SyncScheduler(engine, clients, dispatcher)

        result = await scheduler.run_pass()

        assert result.imported == 2
        assert scheduler.last_result is result
        assert scheduler.stats == {"totalSyncs": 1, "successfulSyncs": 1, "failedSyncs": 0}
        dispatcher.notify_sync_result.assert_awaited_once_with(result, "success")
        clients.record_sync_pass.assert_awaited_once_with(result)
        no_heartbeat.assert_awaited_once()

    async def test_kind_selects_pass(self, dispatcher):
        engine = _make_engine()
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)

        await scheduler.run_pass(SyncKind.IMPORT)
        await scheduler.run_pass(SyncKind.EXPORT)

        engine.import_from_sheet.assert_awaited_once()
        engine.export_to_sheet.assert_awaited_once()
        engine.full_sync.assert_not_awaited()

    async def test_failure_becomes_error_result(self, dispatcher):
        engine = _make_engine(side_effect=StoreConnectionError("sheets down"))
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)

        result = await scheduler.run_pass()

        assert result.success is False
        assert "sheets down" in result.message
        assert scheduler.stats["failedSyncs"] == 1
        assert scheduler.recent_errors == [result.message]
        dispatcher.notify_sync_result.assert_awaited_once_with(result, "error")

    async def test_already_running_returns_immediately(self, dispatcher):
        engine = _make_engine()
        engine.is_running = True
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)

        result = await scheduler.trigger_manual()

        assert result.already_running is True
        engine.full_sync.assert_not_awaited()
        assert scheduler.stats["totalSyncs"] == 0
        dispatcher.notify_sync_result.assert_not_awaited()

    async def test_engine_race_reported_as_already_running(self, dispatcher):
        engine = _make_engine(side_effect=SyncInProgressError("busy"))
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)

        result = await scheduler.run_pass()

        assert result.already_running is True
        assert scheduler.last_result is None

    async def test_persistence_failure_is_not_fatal(self, dispatcher):
        clients = _make_clients()
        clients.record_sync_pass = AsyncMock(side_effect=StoreConnectionError("db down"))
        scheduler = SyncScheduler(_make_engine(), clients, dispatcher)

        result = await scheduler.run_pass()

        assert result.success

    async def test_pass_runs_under_its_own_correlation_id(self, dispatcher):
        seen = []
        engine = _make_engine()

        async def full_sync():
            seen.append(get_correlation_id())
            return SyncResult().finish()

        engine.full_sync = AsyncMock(side_effect=full_sync)
        set_correlation_id("request-cid")

        await SyncScheduler(engine, _make_clients(), dispatcher).run_pass()

        assert seen[0] not in (None, "request-cid")
        assert get_correlation_id() == "request-cid"

    async def test_recent_errors_are_bounded(self, dispatcher):
        noisy = SyncResult()
        for i in range(8):
            noisy.record_error(f"Row {i + 2}: bad")
        scheduler = SyncScheduler(_make_engine(noisy.finish()), _make_clients(), dispatcher)

        await scheduler.run_pass()
        await scheduler.run_pass()

        assert len(scheduler.recent_errors) == 10


class TestBackToBackManualTriggers:
    async def test_second_trigger_while_first_runs(self, store, dispatcher, fake_sheet):
        """Two manual triggers: exactly one pass executes."""
        from clientsync.services.reconciliation import ReconciliationEngine

        gate = asyncio.Event()
        original = fake_sheet.get_all_rows

        async def slow_rows(range=None):
            await gate.wait()
            return await original(range)

        fake_sheet.get_all_rows = slow_rows
        engine = ReconciliationEngine(fake_sheet, store, dispatcher)
        scheduler = SyncScheduler(engine, store, dispatcher)

        first = asyncio.create_task(scheduler.trigger_manual())
        await asyncio.sleep(0)
        second = await scheduler.trigger_manual()

        assert second.already_running is True
        gate.set()
        result = await first
        assert result.success
        assert scheduler.stats["totalSyncs"] == 1


# ---------------------------------------------------------------------------
# start / stop
# ---------------------------------------------------------------------------


class TestStartStop:
    async def test_start_runs_pass_and_arms_timer(self, dispatcher):
        engine = _make_engine()
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)

        await scheduler.start(15)
        await asyncio.sleep(0)

        assert scheduler.is_auto_sync_active
        assert scheduler.interval_minutes == 15
        assert scheduler.next_sync_time is not None
        engine.full_sync.assert_awaited_once()

        await scheduler.stop()
        assert not scheduler.is_auto_sync_active
        assert scheduler.next_sync_time is None

    async def test_restart_replaces_timer(self, dispatcher):
        """Calling start twice never leaves two timers running."""
        scheduler = SyncScheduler(_make_engine(), _make_clients(), dispatcher)

        await scheduler.start(10)
        first_task = scheduler._task
        await scheduler.start(20)
        await asyncio.sleep(0)

        assert first_task.cancelled() or first_task.done()
        assert scheduler._task is not first_task
        assert scheduler.interval_minutes == 20
        await scheduler.stop()

    async def test_stop_without_start(self, dispatcher):
        scheduler = SyncScheduler(_make_engine(), _make_clients(), dispatcher)
        await scheduler.stop()
        assert not scheduler.is_auto_sync_active

    async def test_timer_runs_passes(self, dispatcher):
        engine = _make_engine()
        scheduler = SyncScheduler(engine, _make_clients(), dispatcher)
        stopping = asyncio.Event()

        # 0.0005 min = 30 ms between passes
        task = asyncio.create_task(scheduler._loop(0.0005, stopping))
        await asyncio.sleep(0.15)
        stopping.set()
        await asyncio.wait_for(task, timeout=1)

        assert engine.full_sync.await_count >= 2

    async def test_stop_lets_running_pass_finish(self, dispatcher):
        """stop() during a timer pass waits for it; the pass is recorded and persisted."""
        clients = _make_clients()
        engine = _make_engine()
        finished = []

        async def slow_full_sync():
            await asyncio.sleep(0.2)
            finished.append(True)
            return SyncResult().finish()

        engine.full_sync = AsyncMock(side_effect=slow_full_sync)
        scheduler = SyncScheduler(engine, clients, dispatcher)
        scheduler._stopping = asyncio.Event()
        scheduler._task = asyncio.create_task(scheduler._loop(0.0005, scheduler._stopping))

        await asyncio.sleep(0.1)
        assert engine.full_sync.await_count == 1
        await scheduler.stop()

        assert finished == [True]
        assert scheduler.stats["totalSyncs"] == 1
        clients.record_sync_pass.assert_awaited_once()
        assert not scheduler.is_auto_sync_active


# ---------------------------------------------------------------------------
# status / restore
# ---------------------------------------------------------------------------


class TestStatus:
    async def test_initial_status(self, dispatcher):
        scheduler = SyncScheduler(_make_engine(), _make_clients(), dispatcher, default_interval_minutes=45)
        status = scheduler.status()

        assert status["isRunning"] is False
        assert status["lastSyncTimestamp"] is None
        assert status["lastResult"] is None
        assert status["isAutoSyncActive"] is False
        assert status["intervalMinutes"] == 45
        assert status["stats"]["totalSyncs"] == 0

    async def test_status_after_pass(self, dispatcher):
        scheduler = SyncScheduler(_make_engine(SyncResult(imported=4).finish()), _make_clients(), dispatcher)
        await scheduler.run_pass()

        status = scheduler.status()
        assert status["lastResult"]["imported"] == 4
        assert status["lastSyncTimestamp"] is not None

    async def test_restore_from_store(self, dispatcher):
        last = SyncResult(kind="full", updated=7).finish()
        scheduler = SyncScheduler(_make_engine(), _make_clients(last), dispatcher)

        await scheduler.restore()

        assert scheduler.last_result.updated == 7
        assert scheduler.last_sync_timestamp == last.finished_at

    async def test_restore_tolerates_outage(self, dispatcher):
        clients = _make_clients()
        clients.last_sync_pass = AsyncMock(side_effect=StoreConnectionError("db down"))
        scheduler = SyncScheduler(_make_engine(), clients, dispatcher)

        await scheduler.restore()

        assert scheduler.last_result is None
