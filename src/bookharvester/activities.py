"""Temporal activities for BookHarvester.

A harvest run is one long activity: books are processed strictly one at
a time inside it. The activities object owns the worker process's
AlertGate, so alert quotas carry over between scheduled runs.
"""

from __future__ import annotations

from typing import Any

from temporalio import activity

from .harvester.alerts import AlertGate
from .harvester.run import build_alert_gate, run_harvest_all, run_harvest_warnings


class HarvestActivities:
    """Harvest activities bound to one config and one AlertGate."""

    def __init__(self, config, alert_gate: AlertGate | None = None):
        self.config = config
        self.alert_gate = alert_gate if alert_gate is not None else build_alert_gate(config)

    @activity.defn(name="harvest_all")
    async def harvest_all(self, max_items: int = -1, query_where: str = "") -> dict[str, Any]:
        """Activity to process all matching books.

        Args:
            max_items: Stop after this many books (<=0 = no limit)
            query_where: Parse ``where`` JSON filter

        Returns:
            Harvest summary dict
        """
        activity.logger.info(f"Harvest run: max_items={max_items} where={query_where!r}")
        return await run_harvest_all(
            self.config,
            max_items=max_items,
            query_where=query_where or None,
            alert_gate=self.alert_gate,
        )

    @activity.defn(name="harvest_warnings")
    async def harvest_warnings(self) -> list[str]:
        """Activity to list books that carry warnings."""
        return await run_harvest_warnings(self.config)
