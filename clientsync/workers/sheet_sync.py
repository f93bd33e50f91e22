"""
Sheet sync scheduler - runs reconciliation passes on a fixed interval and on demand.

- start(interval) runs one pass immediately, then arms the recurring timer.
  Calling start() again stops the old timer first; there is never more than one.
- stop() only interrupts the wait between passes. A pass already in flight
  runs to completion, and stop() returns once it has been recorded.
- trigger_manual() while a pass is in flight returns at once with
  already_running=True instead of waiting.
- Each finished pass updates the in-memory status, sends the success/error
  email, writes a Redis heartbeat and is persisted as a SYNC_PASS audit row.
"""
import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from clientsync.errors import SyncInProgressError
from clientsync.schemas.sync import MAX_ERROR_LOG, SyncKind, SyncResult
from clientsync.services.client_store import ClientStore
from clientsync.services.notifications import NotificationDispatcher
from clientsync.services.reconciliation import ReconciliationEngine
from clientsync.utils.logging import correlation_scope

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "clientsync:worker_health:sheet_sync"
DEFAULT_INTERVAL_MINUTES = 30


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from clientsync.utils.redis import get_redis
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=3600,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed: %s", str(e))


class SyncScheduler:
    def __init__(
        self,
        engine: ReconciliationEngine,
        clients: ClientStore,
        dispatcher: NotificationDispatcher,
        default_interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
    ):
        self.engine = engine
        self.clients = clients
        self.dispatcher = dispatcher
        self.interval_minutes = default_interval_minutes
        self.last_result: Optional[SyncResult] = None
        self.last_sync_timestamp: Optional[datetime] = None
        self.next_sync_time: Optional[datetime] = None
        self.recent_errors: list[str] = []
        self.stats = {"totalSyncs": 0, "successfulSyncs": 0, "failedSyncs": 0}
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def is_auto_sync_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def restore(self) -> None:
        """Load the last persisted pass so status survives restarts."""
        try:
            last = await self.clients.last_sync_pass()
        except Exception as e:
            logger.warning("Could not load last sync pass: %s", str(e))
            return
        if last is not None:
            self.last_result = last
            self.last_sync_timestamp = last.finished_at or last.started_at
            logger.info("Restored last sync pass from %s", self.last_sync_timestamp)

    async def start(self, interval_minutes: Optional[int] = None) -> SyncResult:
        await self.stop()
        if interval_minutes:
            self.interval_minutes = interval_minutes
        logger.info("Auto sync starting (every %d min)", self.interval_minutes)

        result = await self.run_pass()

        # A concurrent start() may have armed a timer while the pass ran
        self._release_timer()
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self.interval_minutes, self._stopping))
        return result

    async def stop(self) -> None:
        task = self._task
        self._release_timer()
        self.next_sync_time = None
        if task is None:
            return
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Auto sync stopped")

    def _release_timer(self) -> None:
        """Signal the current loop to exit after any pass it is running."""
        if self._stopping is not None:
            self._stopping.set()
        self._task = None
        self._stopping = None

    async def _loop(self, interval_minutes: int, stopping: asyncio.Event) -> None:
        while True:
            self.next_sync_time = datetime.now(timezone.utc) + timedelta(minutes=interval_minutes)
            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval_minutes * 60)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_pass()
            if stopping.is_set():
                return

    async def trigger_manual(self) -> SyncResult:
        return await self.run_pass()

    async def run_pass(self, kind: str = SyncKind.FULL) -> SyncResult:
        """Run one pass. Never raises; failures are reported in the result."""
        if self.engine.is_running:
            return self._already_running(kind)
        with correlation_scope():
            logger.info("Sync pass (%s) started", kind, extra={"sync_kind": kind})
            return await self._execute(kind)

    async def _execute(self, kind: str) -> SyncResult:
        runners = {
            SyncKind.FULL: self.engine.full_sync,
            SyncKind.IMPORT: self.engine.import_from_sheet,
            SyncKind.EXPORT: self.engine.export_to_sheet,
        }
        try:
            result = await runners[kind]()
        except SyncInProgressError:
            return self._already_running(kind)
        except Exception as e:
            logger.error("Sync pass (%s) failed: %s", kind, str(e))
            result = SyncResult(kind=kind).fail(f"Sync failed: {str(e)}")

        self._record(result)
        await self.dispatcher.notify_sync_result(result, "success" if result.success else "error")
        await _heartbeat()
        try:
            await self.clients.record_sync_pass(result)
        except Exception as e:
            logger.warning("Could not persist sync pass: %s", str(e))
        return result

    def _already_running(self, kind: str) -> SyncResult:
        logger.info("Sync pass (%s) skipped: another pass is running", kind)
        return SyncResult(
            kind=kind, success=False, already_running=True,
        ).finish("Sync already running")

    def _record(self, result: SyncResult) -> None:
        self.last_result = result
        self.last_sync_timestamp = result.finished_at
        self.stats["totalSyncs"] += 1
        if result.success:
            self.stats["successfulSyncs"] += 1
        else:
            self.stats["failedSyncs"] += 1
        self.recent_errors.extend(result.error_log)
        del self.recent_errors[:-MAX_ERROR_LOG]

    def status(self) -> dict:
        return {
            "isRunning": self.engine.is_running,
            "lastSyncTimestamp": self.last_sync_timestamp.isoformat() if self.last_sync_timestamp else None,
            "lastResult": self.last_result.to_api() if self.last_result else None,
            "isAutoSyncActive": self.is_auto_sync_active,
            "intervalMinutes": self.interval_minutes,
            "nextSyncTime": self.next_sync_time.isoformat() if self.next_sync_time else None,
            "recentErrors": list(self.recent_errors),
            "stats": dict(self.stats),
        }
