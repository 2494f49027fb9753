"""Temporal workflows for BookHarvester.

Workflows start harvest activities by name so the workflow sandbox never
imports the harvester itself.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

# A failed run is not retried: failed books are already marked and
# reported, and the next scheduled run picks up where this one stopped.
NO_RETRY = RetryPolicy(maximum_attempts=1)


@workflow.defn
class HarvestAllWorkflow:
    """Run one full harvest pass."""

    @workflow.run
    async def run(self, max_items: int = -1, query_where: str = "") -> dict:
        """Execute the harvest.

        Args:
            max_items: Stop after this many books (<=0 = no limit)
            query_where: Parse ``where`` JSON filter

        Returns:
            Harvest summary dict
        """
        return await workflow.execute_activity(
            "harvest_all",
            args=[max_items, query_where],
            start_to_close_timeout=timedelta(hours=12),
            retry_policy=NO_RETRY,
        )


@workflow.defn
class HarvestWarningsWorkflow:
    """List books that carry warnings."""

    @workflow.run
    async def run(self) -> list:
        return await workflow.execute_activity(
            "harvest_warnings",
            start_to_close_timeout=timedelta(minutes=30),
            retry_policy=NO_RETRY,
        )
