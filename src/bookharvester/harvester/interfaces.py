"""
Interfaces for the collaborators the orchestrator drives.

Concrete adapters live in ``bookharvester.clients``; converters are
plugins looked up through ``bookharvester.harvester.registry``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

from .models import HarvestItem


@dataclass
class Artifact:
    """A file or folder produced by a converter, ready for upload."""

    path: Path
    destination: str = ""  # subfolder under <submitter>/<guid>, "" = the folder itself
    is_directory: bool = False
    label: str = ""


@dataclass
class ConversionResult:
    """What a converter learned about a book besides its artifacts."""

    artifacts: List[Artifact] = field(default_factory=list)
    visibility: Dict[str, bool] = field(default_factory=dict)
    computed_level: Optional[int] = None
    phash_path: Optional[Path] = None
    features: Optional[List[str]] = None
    missing_fonts: List[str] = field(default_factory=list)


@runtime_checkable
class Backend(Protocol):
    """Book table access: lazy queries and field-level partial updates."""

    def get_books(
        self, where: str = "", limit: Optional[int] = None
    ) -> AsyncIterator[HarvestItem]: ...

    def get_books_with_warnings(self) -> AsyncIterator[HarvestItem]: ...

    async def update_object(
        self, class_name: str, object_id: str, fields: Dict[str, Any]
    ) -> None: ...


@runtime_checkable
class Storage(Protocol):
    async def download_book(self, url: str, dest_root: Path) -> Path: ...

    async def upload_file(self, path: Path, destination: str) -> None: ...

    async def upload_directory(self, path: Path, destination: str) -> None: ...


@runtime_checkable
class Converter(Protocol):
    async def convert(
        self, item: HarvestItem, book_dir: Path, staging_dir: Path
    ) -> ConversionResult: ...


@runtime_checkable
class IncidentTracker(Protocol):
    async def submit(self, error: BaseException, context: str) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, subject: str, body: str) -> None: ...
