"""Harvester exceptions."""


class HarvestError(Exception):
    """Base class for harvester errors."""


class ConfigurationError(HarvestError):
    """Required configuration (converter, credentials, ...) is missing."""


class MissingIdentityError(HarvestError):
    """A book without an objectId cannot be checkpointed."""

    def __init__(self, base_url=None):
        self.base_url = base_url
        super().__init__(f"Book has no objectId (baseUrl={base_url!r})")
