"""
Adapters for the services a harvest talks to.

- parse: Parse REST backend (books table)
- s3: book download and artifact upload
- incidents: YouTrack issues and webhook notifications
"""

from .incidents import WebhookNotifier, YouTrackIncidentTracker
from .parse import ParseClient
from .s3 import S3Storage

__all__ = [
    "ParseClient",
    "S3Storage",
    "YouTrackIncidentTracker",
    "WebhookNotifier",
]
