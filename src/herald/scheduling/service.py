"""Scheduling service: owns the store, synchronizer, engine and commands."""

import logging

from herald.config.models import HeraldConfig
from herald.scheduling.commands import AccessCheck, ScheduleCommands, allow_all
from herald.scheduling.engine import Scheduler, TickReport
from herald.scheduling.platform import PlatformClient
from herald.scheduling.store import ItemStore
from herald.scheduling.sync import EventSynchronizer

logger = logging.getLogger(__name__)


class SchedulingService:
    """Wires the scheduling components together for one bot process."""

    def __init__(
        self,
        config: HeraldConfig,
        access_check: AccessCheck = allow_all,
    ):
        self._config = config
        self.store = ItemStore(config.scheduler.data_dir)
        self.synchronizer = EventSynchronizer(self.store)
        self.scheduler = Scheduler(
            self.store, poll_interval=config.scheduler.poll_interval
        )
        self.commands = ScheduleCommands(
            self.store,
            self.synchronizer,
            scheduler=self.scheduler,
            timezone=config.timezone,
            access_check=access_check,
        )

    async def initialize(self, client: PlatformClient) -> TickReport:
        """Bind the platform client, reconcile drift, and start the engine."""
        self.synchronizer.client = client
        if self._config.scheduler.reconcile_on_start:
            await self.reconcile_all(client)
        return await self.scheduler.initialize(client)

    async def reconcile_all(self, client: PlatformClient) -> int:
        touched = 0
        for workspace_id in client.workspace_ids():
            try:
                touched += await self.synchronizer.reconcile(workspace_id)
            except Exception as e:
                logger.error(
                    "reconcile_error",
                    extra={"workspace.id": workspace_id, "error.message": str(e)},
                )
        return touched

    async def stop(self) -> None:
        await self.scheduler.stop()
