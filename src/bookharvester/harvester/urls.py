"""Helpers for the ``baseUrl`` of a book.

A base URL points at the book's folder in the upload bucket and ends with
``<submitter>/<book guid>/<book title>/``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse


def remove_book_title_from_base_url(base_url: Optional[str]) -> Optional[str]:
    """Drop the trailing title folder from a (decoded) base URL."""
    if not base_url:
        return base_url

    length = len(base_url)
    if base_url.endswith("/"):
        length -= 1

    last_slash = base_url.rfind("/", 0, length)
    if last_slash >= 0:
        return base_url[:last_slash]
    return base_url


@dataclass(frozen=True)
class BookUrlComponents:
    """The parts of a base URL that name a book in storage."""

    submitter: str
    book_guid: str
    book_title: str

    @classmethod
    def from_url(cls, url: str) -> "BookUrlComponents":
        path = unquote(urlparse(url).path)
        parts = [part for part in path.split("/") if part]
        if len(parts) < 3:
            raise ValueError(f"Not a book URL: {url}")
        submitter, book_guid, book_title = parts[-3:]
        return cls(submitter=submitter, book_guid=book_guid, book_title=book_title)

    @property
    def folder(self) -> str:
        """Upload folder for the book's artifacts."""
        return f"{self.submitter}/{self.book_guid}"

    @property
    def key_prefix(self) -> str:
        """Key prefix of the book's source files in the download bucket."""
        return f"{self.submitter}/{self.book_guid}/{self.book_title}/"
