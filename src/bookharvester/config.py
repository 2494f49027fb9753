"""
Configuration for the BookHarvester worker.

Uses Pydantic for validation and environment loading.
Service-level settings live here; per-harvest policy is in
``bookharvester.harvester.config``.
"""

import os
import socket
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from .harvester.config import Environment, HarvesterConfig


# (download bucket, upload bucket) per environment
BUCKETS = {
    Environment.PROD: ("BloomLibraryBooks", "bloomharvest"),
    Environment.TEST: ("BloomLibraryBooks-UnitTests", "bloomharvest-unittests"),
    Environment.DEV: ("BloomLibraryBooks-Sandbox", "bloomharvest-sandbox"),
    Environment.LOCAL: ("BloomLibraryBooks-Sandbox", "bloomharvest-sandbox"),
}


class ParseConfig(BaseModel):
    """Connection settings for the Parse backend."""

    url: str = Field(default="", description="Parse server base URL")
    app_id: str = Field(default="", description="X-Parse-Application-Id")
    rest_key: str = Field(default="", description="X-Parse-REST-API-Key")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    page_size: int = Field(default=100, description="Rows fetched per query page")


class StorageConfig(BaseModel):
    """Object storage buckets (S3)."""

    download_bucket: str = Field(default="", description="Bucket books are read from")
    upload_bucket: str = Field(default="", description="Bucket artifacts are written to")
    region: str = Field(default="us-east-1")


class IncidentConfig(BaseModel):
    """Incident tracker and notification targets."""

    youtrack_url: str = Field(default="", description="YouTrack base URL")
    youtrack_token: str = Field(default="", description="YouTrack permanent token")
    youtrack_project: str = Field(default="", description="YouTrack project ID")
    webhook_url: str = Field(default="", description="Webhook for operator notifications")


class WorkerConfig(BaseSettings):
    """Master configuration for BookHarvester.

    Loads from environment variables (exact names, no prefix).
    """

    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="bookharvester")
    service_version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO")
    environment: Environment = Field(default=Environment.DEV)
    worker_id: str = Field(default_factory=socket.gethostname)

    # Temporal (scheduled harvest workflows)
    temporal_host: str = Field(default="localhost:7233")

    parse: ParseConfig = Field(default_factory=ParseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    incidents: IncidentConfig = Field(default_factory=IncidentConfig)
    harvester: HarvesterConfig = Field(default_factory=HarvesterConfig)

    @property
    def download_bucket(self) -> str:
        return self.storage.download_bucket or BUCKETS[self.environment][0]

    @property
    def upload_bucket(self) -> str:
        return self.storage.upload_bucket or BUCKETS[self.environment][1]

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Load configuration from environment variables."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "bookharvester"),
            service_version=os.getenv("SERVICE_VERSION", "0.1.0"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            environment=Environment(os.getenv("HARVESTER_ENVIRONMENT", "dev").lower()),
            # Multiple workers on one host need a suffix here
            worker_id=os.getenv("HARVESTER_WORKER_ID") or socket.gethostname(),
            temporal_host=os.getenv("TEMPORAL_HOST", "localhost:7233"),
            parse=ParseConfig(
                url=os.getenv("PARSE_URL", ""),
                app_id=os.getenv("PARSE_APP_ID", ""),
                rest_key=os.getenv("PARSE_REST_KEY", ""),
                timeout=float(os.getenv("PARSE_TIMEOUT", "30.0")),
                page_size=int(os.getenv("PARSE_PAGE_SIZE", "100")),
            ),
            storage=StorageConfig(
                download_bucket=os.getenv("DOWNLOAD_BUCKET", ""),
                upload_bucket=os.getenv("UPLOAD_BUCKET", ""),
                region=os.getenv("AWS_REGION", "us-east-1"),
            ),
            incidents=IncidentConfig(
                youtrack_url=os.getenv("YOUTRACK_URL", ""),
                youtrack_token=os.getenv("YOUTRACK_TOKEN", ""),
                youtrack_project=os.getenv("YOUTRACK_PROJECT", ""),
                webhook_url=os.getenv("ALERT_WEBHOOK_URL", ""),
            ),
            harvester=HarvesterConfig.from_env(),
        )


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    """Get the process configuration (loaded once)."""
    return WorkerConfig.from_env()
