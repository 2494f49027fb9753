"""BookHarvester Temporal worker.

Polls the harvest task queue and runs scheduled harvest workflows in this
process. One worker process handles one harvest at a time.
"""

from __future__ import annotations

import logging

from temporalio.client import Client
from temporalio.worker import Worker

from .activities import HarvestActivities
from .config import WorkerConfig, get_config
from .workflows import HarvestAllWorkflow, HarvestWarningsWorkflow

logger = logging.getLogger(__name__)

TASK_QUEUE = "harvest-tasks"


async def get_temporal_client(host: str = None) -> Client:
    """Get Temporal client connection (host from config if not provided)."""
    if host is None:
        host = get_config().temporal_host
    return await Client.connect(host)


def create_worker(client: Client, config: WorkerConfig) -> Worker:
    """Create the harvest worker with its own AlertGate."""
    activities = HarvestActivities(config)
    return Worker(
        client,
        task_queue=TASK_QUEUE,
        workflows=[HarvestAllWorkflow, HarvestWarningsWorkflow],
        activities=[activities.harvest_all, activities.harvest_warnings],
        # Books are processed strictly one at a time
        max_concurrent_activities=1,
    )


async def run_worker(config: WorkerConfig = None, temporal_host: str = None) -> None:
    """Connect to Temporal and process harvest workflows until cancelled."""
    config = config or get_config()
    client = await get_temporal_client(temporal_host or config.temporal_host)
    worker = create_worker(client, config)

    logger.info(
        "--- BookHarvester worker %s starting (queue=%s, temporal=%s) ---",
        config.worker_id,
        TASK_QUEUE,
        temporal_host or config.temporal_host,
    )
    await worker.run()
