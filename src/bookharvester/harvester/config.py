"""
Harvest policy configuration.

Contains settings for:
- Alert suppression (quota and lookback window)
- Harvester version stamped on processed books
- Batch driver behaviour (limits, read-only, continue-on-error)
- Converter plugin lookup
"""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Environment(str, Enum):
    """Deployment environment of the backend the worker talks to."""

    PROD = "prod"
    DEV = "dev"
    TEST = "test"
    LOCAL = "local"


class AlertPolicy(BaseModel):
    """Noise-suppression policy for operator alerts."""

    max_alert_count: int = Field(default=5, description="Alerts allowed per window")
    window_hours: int = Field(default=24, description="Lookback window in hours")


class HarvesterConfig(BaseModel):
    """Configuration for a harvest run."""

    # Capability version written to each attempted book
    major_version: int = Field(default=1)
    minor_version: int = Field(default=0)

    # Batch driver
    max_items: int = Field(default=-1, description="Stop after N books, <=0 = all")
    query_where: str = Field(default="", description="Parse 'where' JSON filter")
    continue_on_error: bool = Field(
        default=False, description="Keep going after a book fails"
    )
    read_only: bool = Field(
        default=False, description="Download books but skip processing"
    )
    poll_interval: int = Field(
        default=3600, description="Seconds between scheduled harvest runs"
    )

    download_root: Optional[str] = Field(
        default=None, description="Download directory, None=system temp"
    )

    # Converter plugin: registry name or "module:Class"
    converter: str = Field(default="", description="Converter to use")
    plugin_dir: str = Field(default="", description="Directory with converters/")

    alerts: AlertPolicy = Field(default_factory=AlertPolicy)

    @classmethod
    def from_env(cls) -> "HarvesterConfig":
        """Load from environment variables."""
        return cls(
            major_version=int(os.getenv("HARVESTER_MAJOR_VERSION", "1")),
            minor_version=int(os.getenv("HARVESTER_MINOR_VERSION", "0")),
            max_items=int(os.getenv("HARVESTER_MAX_ITEMS", "-1")),
            query_where=os.getenv("HARVESTER_QUERY_WHERE", ""),
            continue_on_error=os.getenv("HARVESTER_CONTINUE_ON_ERROR", "false").lower()
            == "true",
            read_only=os.getenv("HARVESTER_READ_ONLY", "false").lower() == "true",
            poll_interval=int(os.getenv("HARVESTER_POLL_INTERVAL_SEC", "3600")),
            download_root=os.getenv("HARVESTER_DOWNLOAD_ROOT"),
            converter=os.getenv("HARVESTER_CONVERTER", ""),
            plugin_dir=os.getenv("HARVESTER_PLUGIN_DIR", ""),
            alerts=AlertPolicy(
                max_alert_count=int(os.getenv("ALERT_MAX_COUNT", "5")),
                window_hours=int(os.getenv("ALERT_WINDOW_HOURS", "24")),
            ),
        )
