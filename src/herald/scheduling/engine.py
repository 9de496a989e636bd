"""Trigger engine: polls every workspace and fires due items.

The engine owns the polling loop and the single-flight guard. All data
access goes through ItemStore and all delivery through ReminderExecutor.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from herald.scheduling.executor import ReminderExecutor
from herald.scheduling.platform import PlatformClient
from herald.scheduling.store import ItemStore

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[PlatformClient], ReminderExecutor]

# Heartbeat every N polls (~1 hour at the default 60s interval)
HEARTBEAT_INTERVAL = 60


@dataclass
class TickReport:
    """Outcome of one tick."""

    fired: int = 0
    failed: int = 0
    workspaces: int = 0
    skipped: bool = False


class Scheduler:
    """Runs the trigger engine against a bound platform client.

    Example:
        scheduler = Scheduler(ItemStore(data_dir), poll_interval=60)
        await scheduler.initialize(client)
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: ItemStore,
        executor_factory: ExecutorFactory = ReminderExecutor,
        poll_interval: float = 60.0,
    ):
        self._store = store
        self._executor_factory = executor_factory
        self._poll_interval = poll_interval
        self._client: PlatformClient | None = None
        self._executor: ReminderExecutor | None = None
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()
        self._stopped = False
        self._checking = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._poll_count = 0

    @property
    def store(self) -> ItemStore:
        return self._store

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def client(self) -> PlatformClient | None:
        return self._client

    @property
    def accepting_ticks(self) -> bool:
        """True once bound to a client and until stop() is called."""
        return self._client is not None and not self._stopped

    async def initialize(self, client: PlatformClient) -> TickReport:
        """Bind the platform client, start polling, and run one tick now.

        Calling again with a new client replaces the dispatch target.
        """
        self._client = client
        self._executor = self._executor_factory(client)
        self._stopped = False

        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._poll_loop())
            logger.info(
                "scheduler_started",
                extra={
                    "poll.interval": self._poll_interval,
                    "file.path": str(self._store.data_dir),
                },
            )
        return await self.check_all_items()

    async def stop(self) -> None:
        """Stop polling and refuse further ticks.

        An in-flight tick finishes first, whether it came from the poll loop,
        from initialize() or from a forced check.
        """
        self._stopped = True
        self._stopping.set()
        task, self._task = self._task, None
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._idle.wait()
        if task is not None:
            logger.info("scheduler_stopped")

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self._poll_interval
                )
            if self._stopping.is_set():
                break

            self._poll_count += 1
            if self._poll_count % HEARTBEAT_INTERVAL == 0:
                logger.info(
                    "scheduler_heartbeat",
                    extra={"poll.count": self._poll_count},
                )
            try:
                await self.check_all_items()
            except Exception as e:
                logger.error("schedule_check_error", extra={"error.message": str(e)})

    async def check_all_items(self, now: datetime | None = None) -> TickReport:
        """Run one tick over every workspace the client has joined.

        Returns immediately with ``skipped=True`` if a tick is in flight or
        the scheduler has been stopped.
        """
        if self._stopped:
            logger.debug("schedule_check_after_stop")
            return TickReport(skipped=True)
        if self._checking:
            logger.debug("schedule_check_skipped")
            return TickReport(skipped=True)
        if self._client is None or self._executor is None:
            logger.warning("schedule_check_without_client")
            return TickReport(skipped=True)

        self._checking = True
        self._idle.clear()
        try:
            now = now or datetime.now(UTC)
            report = TickReport()
            for workspace_id in list(self._client.workspace_ids()):
                try:
                    await self._check_workspace(workspace_id, now, report)
                except Exception as e:
                    logger.error(
                        "workspace_check_error",
                        extra={"workspace.id": workspace_id, "error.message": str(e)},
                    )
                report.workspaces += 1
        finally:
            self._checking = False
            self._idle.set()

        if report.fired or report.failed:
            logger.info(
                "schedule_check_complete",
                extra={
                    "schedule.fired": report.fired,
                    "schedule.failed": report.failed,
                    "schedule.workspaces": report.workspaces,
                },
            )
        return report

    async def _check_workspace(
        self, workspace_id: str, now: datetime, report: TickReport
    ) -> None:
        assert self._executor is not None
        executor = self._executor

        async with self._store.mutate(workspace_id) as collection:
            due = [item for item in collection.items if item.is_due(now)]
            if not due:
                return

            logger.debug(
                "schedule_due_items",
                extra={
                    "workspace.id": workspace_id,
                    "schedule.total": len(collection.items),
                    "schedule.due": len(due),
                },
            )

            for item in due:
                # Removed by an earlier item's dispatch (remote event gone)
                if not collection.contains(item):
                    continue

                logger.info(
                    "scheduled_item_triggered",
                    extra={
                        "workspace.id": workspace_id,
                        "schedule.item_id": item.id,
                        "schedule.type": item.type.value,
                    },
                )
                try:
                    if await executor.fire(item, collection, now):
                        report.fired += 1
                except Exception as e:
                    report.failed += 1
                    logger.error(
                        "scheduled_item_error",
                        extra={
                            "workspace.id": workspace_id,
                            "schedule.item_id": item.id,
                            "error.message": str(e),
                        },
                    )

                # Record the attempt even on failure to prevent infinite retries
                if collection.contains(item):
                    item.mark_fired(now)
                collection.mark_dirty()
