"""
Harvest entry points.

Builds a HarvestOrchestrator from WorkerConfig and runs one of the
harvest modes. Used by the CLI (``python -m bookharvester``), the
APScheduler loop and the Temporal activities.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .alerts import AlertGate
from .errors import ConfigurationError
from .orchestrator import HarvestOrchestrator
from .registry import converter_registry

logger = logging.getLogger(__name__)


def build_alert_gate(config) -> AlertGate:
    """AlertGate sized from the harvest alert policy."""
    policy = config.harvester.alerts
    return AlertGate(
        max_alert_count=policy.max_alert_count,
        window=timedelta(hours=policy.window_hours),
    )


def build_orchestrator(config, alert_gate: Optional[AlertGate] = None) -> HarvestOrchestrator:
    """Wire the Parse, S3, YouTrack and webhook adapters into an orchestrator."""
    from ..clients import ParseClient, S3Storage, WebhookNotifier, YouTrackIncidentTracker

    harvest_cfg = config.harvester

    if harvest_cfg.plugin_dir:
        converter_registry.discover_plugins(harvest_cfg.plugin_dir)
    converter = converter_registry.get_converter(harvest_cfg.converter)
    if converter is None:
        raise ConfigurationError(
            f"No converter found for {harvest_cfg.converter!r}. "
            "Set HARVESTER_CONVERTER to a registered name or module:Class"
        )

    if not config.parse.url or not config.parse.app_id:
        raise ConfigurationError("PARSE_URL and PARSE_APP_ID must be set")

    backend = ParseClient(
        url=config.parse.url,
        app_id=config.parse.app_id,
        rest_key=config.parse.rest_key,
        timeout=config.parse.timeout,
        page_size=config.parse.page_size,
    )
    storage = S3Storage(
        download_bucket=config.download_bucket,
        upload_bucket=config.upload_bucket,
        region=config.storage.region,
    )

    incidents = None
    if config.incidents.youtrack_url:
        incidents = YouTrackIncidentTracker(
            url=config.incidents.youtrack_url,
            token=config.incidents.youtrack_token,
            project_id=config.incidents.youtrack_project,
        )
    else:
        logger.warning("YOUTRACK_URL not configured, failures will only be logged")

    notifier = None
    if config.incidents.webhook_url:
        notifier = WebhookNotifier(config.incidents.webhook_url)

    return HarvestOrchestrator(
        backend,
        storage,
        converter,
        worker_id=config.worker_id,
        config=harvest_cfg,
        alert_gate=alert_gate if alert_gate is not None else build_alert_gate(config),
        incidents=incidents,
        notifier=notifier,
        environment=config.environment,
    )


async def run_harvest_all(
    config=None,
    max_items: Optional[int] = None,
    query_where: Optional[str] = None,
    alert_gate: Optional[AlertGate] = None,
) -> Dict[str, Any]:
    """Process all matching books.

    Returns:
        HarvestSummary as a dict: {processed, succeeded, failed, silenced, ...}
    """
    if config is None:
        from ..config import get_config

        config = get_config()

    orchestrator = build_orchestrator(config, alert_gate)
    logger.info(
        f"Starting harvest worker={config.worker_id} environment={config.environment.value}"
    )
    try:
        summary = await orchestrator.harvest_all(max_items=max_items, query_where=query_where)
        return summary.to_dict()
    finally:
        await orchestrator.backend.close()


async def run_harvest_warnings(config=None) -> List[str]:
    """List books that currently carry warnings."""
    if config is None:
        from ..config import get_config

        config = get_config()

    orchestrator = build_orchestrator(config)
    try:
        return await orchestrator.report_warnings()
    finally:
        await orchestrator.backend.close()
