"""
Tests for the Temporal activities and worker wiring.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio.testing import ActivityEnvironment

from bookharvester.activities import HarvestActivities
from bookharvester.config import WorkerConfig
from bookharvester.harvester.alerts import AlertGate
from bookharvester.worker import TASK_QUEUE, create_worker


class TestHarvestActivities:
    """Activities share one AlertGate across runs."""

    def test_gate_created_from_policy(self):
        config = WorkerConfig(harvester={"alerts": {"max_alert_count": 3}})
        activities = HarvestActivities(config)
        assert activities.alert_gate.max_alert_count == 3

    def test_empty_gate_is_kept(self):
        """Verify a gate with no records yet is shared, not replaced."""
        gate = AlertGate()
        activities = HarvestActivities(WorkerConfig(), gate)
        assert activities.alert_gate is gate

    @pytest.mark.asyncio
    async def test_harvest_all_passes_shared_gate(self):
        config = WorkerConfig()
        activities = HarvestActivities(config)
        run = AsyncMock(return_value={"processed": 1})

        with patch("bookharvester.activities.run_harvest_all", run):
            result = await ActivityEnvironment().run(activities.harvest_all, 5, "")
            await ActivityEnvironment().run(activities.harvest_all, -1, '{"title":"x"}')

        assert result == {"processed": 1}
        first, second = run.await_args_list
        assert first.kwargs == {
            "max_items": 5,
            "query_where": None,
            "alert_gate": activities.alert_gate,
        }
        assert second.kwargs["query_where"] == '{"title":"x"}'
        assert second.kwargs["alert_gate"] is activities.alert_gate

    @pytest.mark.asyncio
    async def test_harvest_warnings(self):
        activities = HarvestActivities(WorkerConfig())
        run = AsyncMock(return_value=["b1 (url): 1 warnings."])

        with patch("bookharvester.activities.run_harvest_warnings", run):
            result = await ActivityEnvironment().run(activities.harvest_warnings)

        assert result == ["b1 (url): 1 warnings."]


class TestCreateWorker:
    def test_worker_polls_harvest_queue(self):
        with patch("bookharvester.worker.Worker") as worker_class:
            create_worker(MagicMock(), WorkerConfig())

        kwargs = worker_class.call_args.kwargs
        assert kwargs["task_queue"] == TASK_QUEUE
        assert kwargs["max_concurrent_activities"] == 1
        assert len(kwargs["activities"]) == 2
