"""
Scheduler for periodic harvest runs.

Uses APScheduler to run a full harvest every ``poll_interval`` seconds
in a long-lived process. The AlertGate is created once and shared by all
runs, so alert quotas span runs within the lookback window.

For cluster-managed scheduling use the Temporal schedule in
``bookharvester.schedules`` instead.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JOB_ID = "harvest_all"


class HarvesterScheduler:
    """Runs ``run_harvest`` on a fixed interval, one run at a time."""

    def __init__(
        self,
        run_harvest: Callable[[], Awaitable[Any]],
        poll_interval: int = 3600,
    ):
        self.run_harvest = run_harvest
        self.poll_interval = poll_interval
        self.scheduler = AsyncIOScheduler()

    def start(self, run_immediately: bool = True):
        """Start the scheduler."""
        extra = {}
        if run_immediately:
            extra["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._run_once,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id=JOB_ID,
            name="Harvest All Books",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **extra,
        )

        self.scheduler.start()
        logger.info(f"Harvester scheduler started. Running every {self.poll_interval}s")

    async def stop(self):
        """Stop the scheduler."""
        self.scheduler.shutdown(wait=False)
        logger.info("Harvester scheduler stopped")

    async def _run_once(self):
        try:
            result = await self.run_harvest()
            logger.info(f"Scheduled harvest complete: {result}")
        except Exception as e:
            # Keep the schedule alive; the failed book was already reported
            logger.exception(f"Scheduled harvest failed: {e}")


async def run_scheduler(config=None):
    """Run harvests forever on the configured interval."""
    import asyncio

    from ..config import get_config
    from .run import build_alert_gate, run_harvest_all

    config = config or get_config()
    alert_gate = build_alert_gate(config)

    scheduler = HarvesterScheduler(
        lambda: run_harvest_all(config, alert_gate=alert_gate),
        poll_interval=config.harvester.poll_interval,
    )

    try:
        scheduler.start()
        while True:
            await asyncio.sleep(3600)
    finally:
        await scheduler.stop()
