"""
S3 storage for books and harvested artifacts.

Books are read from the download bucket and artifacts written to a
separate upload bucket, so each bucket gets its own ``S3Storage``
(or pass both names to one instance).

boto3 is blocking; calls run in the default executor.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3

logger = logging.getLogger(__name__)


class S3Storage:
    """Downloads book folders and uploads harvest artifacts."""

    def __init__(
        self,
        download_bucket: str,
        upload_bucket: str,
        region: str = "us-east-1",
        client: Optional[Any] = None,
    ):
        self.download_bucket = download_bucket
        self.upload_bucket = upload_bucket
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            logger.info(f"Connecting to S3 (region: {self.region})")
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    # =========================================================================
    # Download
    # =========================================================================

    async def download_book(self, url: str, dest_root: Path) -> Path:
        """Download the book folder under ``url`` (title removed) into ``dest_root``.

        Returns:
            Path of the downloaded book folder.
        """
        return await self._run(self._download_book, url, Path(dest_root))

    def _download_book(self, url: str, dest_root: Path) -> Path:
        parts = [p for p in unquote(urlparse(url).path).split("/") if p]
        if len(parts) < 2:
            raise ValueError(f"Not a book folder URL: {url}")
        prefix = f"{parts[-2]}/{parts[-1]}/"

        book_dir: Optional[Path] = None
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.download_bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                relative = key[len(prefix):]
                if not relative or key.endswith("/"):
                    continue
                target = dest_root / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                self.client.download_file(self.download_bucket, key, str(target))
                if book_dir is None:
                    book_dir = dest_root / relative.split("/", 1)[0]

        if book_dir is None:
            raise FileNotFoundError(
                f"No files under s3://{self.download_bucket}/{prefix}"
            )
        logger.info(f"Downloaded s3://{self.download_bucket}/{prefix} to {book_dir}")
        return book_dir

    # =========================================================================
    # Upload
    # =========================================================================

    async def upload_file(self, path: Path, destination: str) -> None:
        """Upload ``path`` as ``<destination>/<file name>``."""
        path = Path(path)
        await self._run(self._put, path, f"{destination.rstrip('/')}/{path.name}")

    async def upload_directory(self, path: Path, destination: str) -> None:
        """Upload every file below ``path``, keeping relative paths."""
        path = Path(path)
        for file in sorted(p for p in path.rglob("*") if p.is_file()):
            key = f"{destination.rstrip('/')}/{file.relative_to(path).as_posix()}"
            await self._run(self._put, file, key)

    def _put(self, path: Path, key: str) -> None:
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        extra_args = {}
        content_type, _ = mimetypes.guess_type(path.name)
        if content_type:
            extra_args["ContentType"] = content_type
        logger.debug(f"Uploading {path} to s3://{self.upload_bucket}/{key}")
        self.client.upload_file(str(path), self.upload_bucket, key, ExtraArgs=extra_args)
