"""
BookHarvester - batch harvesting worker for a Parse-backed book library.

Pulls book rows that need processing, runs a converter on each book's
files, uploads the artifacts and writes harvest state back to Parse.
Failures are reported to an incident tracker and, unless the AlertGate
silences them, to an operator webhook.

Usage:
    from bookharvester import get_config
    from bookharvester.harvester.run import run_harvest_all

    summary = await run_harvest_all(get_config(), max_items=10)
"""

__version__ = "0.1.0"

from .config import WorkerConfig, get_config
from .harvester import (
    AlertGate,
    AlertRecord,
    HarvestItem,
    HarvestOrchestrator,
    HarvestState,
    converter_registry,
)

__all__ = [
    "__version__",
    # Config
    "WorkerConfig",
    "get_config",
    # Harvester
    "AlertGate",
    "AlertRecord",
    "HarvestItem",
    "HarvestOrchestrator",
    "HarvestState",
    "converter_registry",
]
