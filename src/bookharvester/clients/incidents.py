"""
Incident reporting.

- YouTrackIncidentTracker: files an issue for every processing failure
- WebhookNotifier: posts operator notifications (gated by the AlertGate)
"""

from __future__ import annotations

import logging
import traceback
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class YouTrackIncidentTracker:
    """Creates YouTrack issues for unhandled harvest errors."""

    def __init__(
        self,
        url: str,
        token: str,
        project_id: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.project_id = project_id
        self.timeout = timeout
        self._client = client

    async def submit(self, error: BaseException, context: str) -> None:
        summary = f"[BookHarvester] {type(error).__name__}: {error}"[:250]
        description = "\n\n".join(
            [
                context,
                "```",
                "".join(traceback.format_exception(type(error), error, error.__traceback__)),
                "```",
            ]
        )
        payload = {
            "project": {"id": self.project_id},
            "summary": summary,
            "description": description,
        }

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(
                f"{self.url}/api/issues",
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
                params={"fields": "idReadable"},
            )
            response.raise_for_status()
            logger.info(f"Submitted issue {response.json().get('idReadable', '?')}")
        finally:
            if self._client is None:
                await client.aclose()


class WebhookNotifier:
    """Posts a JSON ``{"subject", "text"}`` message to a chat webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client

    async def notify(self, subject: str, body: str) -> None:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(
                self.webhook_url,
                json={"subject": subject, "text": f"**{subject}**\n{body}"},
            )
            response.raise_for_status()
        finally:
            if self._client is None:
                await client.aclose()
