"""
Parse REST client for the books table.

Only what the harvester needs: paged queries that yield ``HarvestItem``s
lazily, and field-level partial updates (Parse merges the fields server
side, unlisted columns are left alone).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..harvester.models import BOOKS_CLASS, HarvestItem

logger = logging.getLogger(__name__)

# Columns selected for each book (keep in sync with HarvestItem)
BOOK_KEYS = (
    "objectId",
    "baseUrl",
    "title",
    "inCirculation",
    "uploader",
    "harvestState",
    "harvesterId",
    "harvesterMajorVersion",
    "harvesterMinorVersion",
    "harvestStartedAt",
    "harvestLog",
    "features",
    "tags",
    "show",
    "phashOfFirstContentImage",
    "warnings",
)


class ParseClient:
    """Async client for a Parse server.

    The underlying ``httpx.AsyncClient`` is created lazily; pass one in to
    share a connection pool or to test against a mock transport.
    """

    def __init__(
        self,
        url: str,
        app_id: str,
        rest_key: str = "",
        timeout: float = 30.0,
        page_size: int = 100,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url.rstrip("/")
        self.app_id = app_id
        self.rest_key = rest_key
        self.timeout = timeout
        self.page_size = page_size
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"X-Parse-Application-Id": self.app_id}
            if self.rest_key:
                headers["X-Parse-REST-API-Key"] = self.rest_key
            self._client = httpx.AsyncClient(
                base_url=self.url, headers=headers, timeout=self.timeout
            )
        return self._client

    async def get_books(
        self, where: str = "", limit: Optional[int] = None
    ) -> AsyncIterator[HarvestItem]:
        """Yield books matching the ``where`` JSON filter, one page at a time."""
        async for row in self._query(BOOKS_CLASS, where or "", limit):
            book = HarvestItem.model_validate(row)
            book.mark_as_database_version()
            yield book

    async def get_books_with_warnings(self) -> AsyncIterator[HarvestItem]:
        where = json.dumps({"warnings": {"$exists": True, "$ne": []}})
        async for book in self.get_books(where=where):
            yield book

    async def _query(
        self, class_name: str, where: str, limit: Optional[int]
    ) -> AsyncIterator[Dict[str, Any]]:
        client = self._get_client()
        skip = 0
        returned = 0
        while True:
            page_size = self.page_size
            if limit is not None:
                page_size = min(page_size, limit - returned)
                if page_size <= 0:
                    return

            params: Dict[str, Any] = {
                "keys": ",".join(BOOK_KEYS),
                "limit": page_size,
                "skip": skip,
                "order": "updatedAt",
            }
            if where:
                params["where"] = where

            response = await client.get(f"/classes/{class_name}", params=params)
            response.raise_for_status()
            results = response.json().get("results", [])
            logger.debug(f"Parse query {class_name}: {len(results)} rows (skip={skip})")

            for row in results:
                yield row
            returned += len(results)
            skip += len(results)

            if len(results) < page_size:
                return

    async def update_object(
        self, class_name: str, object_id: str, fields: Dict[str, Any]
    ) -> None:
        """Write a subset of columns of one row."""
        client = self._get_client()
        response = await client.put(f"/classes/{class_name}/{object_id}", json=fields)
        response.raise_for_status()
        logger.debug(f"Updated {class_name}/{object_id}: {sorted(fields)}")

    async def close(self):
        """Close the HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
