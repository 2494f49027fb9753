"""
Harvester core.

Components:
- alerts: AlertGate, the alert noise suppressor
- models: the Parse book row and its harvest bookkeeping
- orchestrator: per-book state machine and batch driver
- registry: converter plugins
- scheduler: APScheduler loop for periodic harvests
- run: builds an orchestrator from WorkerConfig

Note: entry points in ``run`` and ``scheduler`` import the service config
lazily, so importing this package never loads the environment.
"""

from .alerts import AlertGate, AlertRecord
from .config import AlertPolicy, Environment, HarvesterConfig
from .errors import ConfigurationError, HarvestError, MissingIdentityError
from .interfaces import Artifact, ConversionResult
from .models import HarvestItem, HarvestState, LogEntry, VisibilityFlags
from .orchestrator import FailureOutcome, HarvestOrchestrator, HarvestSummary
from .registry import converter_registry
from .scheduler import HarvesterScheduler

__all__ = [
    "AlertGate",
    "AlertRecord",
    "AlertPolicy",
    "Environment",
    "HarvesterConfig",
    "ConfigurationError",
    "HarvestError",
    "MissingIdentityError",
    "Artifact",
    "ConversionResult",
    "HarvestItem",
    "HarvestState",
    "LogEntry",
    "VisibilityFlags",
    "FailureOutcome",
    "HarvestOrchestrator",
    "HarvestSummary",
    "converter_registry",
    "HarvesterScheduler",
]
