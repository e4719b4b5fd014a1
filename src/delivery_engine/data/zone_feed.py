"""Subscribe/callback channel for merchant zone-table replacements."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..config import settings
from ..models.domain import ZoneTable
from .zone_repository import load_zones

logger = logging.getLogger(__name__)

ZoneListener = Callable[[ZoneTable], None]


class ZoneFeed:
    """Delivers whole zone-table snapshots to subscribers.

    Every published table is complete and authoritative; subscribers replace
    what they hold rather than merging.
    """

    def __init__(self, merchant_id: str) -> None:
        self.merchant_id = merchant_id
        self._listeners: list[ZoneListener] = []
        self._latest: Optional[ZoneTable] = None

    @property
    def latest(self) -> Optional[ZoneTable]:
        return self._latest

    def subscribe(self, listener: ZoneListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, table: ZoneTable) -> None:
        if table.merchant_id != self.merchant_id:
            raise ValueError(
                f"Zone table for merchant {table.merchant_id} published on feed for {self.merchant_id}."
            )
        self._latest = table
        for listener in tuple(self._listeners):
            listener(table)


class PollingZoneFeed(ZoneFeed):
    """Reloads the zone table on an interval and publishes it when it changed."""

    def __init__(
        self,
        merchant_id: str,
        loader: Callable[[str], ZoneTable] = load_zones,
        interval_seconds: float | None = None,
    ) -> None:
        super().__init__(merchant_id)
        self.loader = loader
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.zone_poll_interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def poll_once(self) -> bool:
        """Fetch the current table; returns True when a new snapshot was published."""
        table = await asyncio.to_thread(self.loader, self.merchant_id)
        if table == self._latest:
            return False
        logger.info(f"Delivery zones changed for merchant {self.merchant_id}")
        self.publish(table)
        return True

    async def run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                # Keep serving the last snapshot until the source recovers
                logger.warning(f"Zone poll failed for merchant {self.merchant_id}: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
