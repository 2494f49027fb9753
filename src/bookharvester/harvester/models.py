"""
Book row model for the Parse ``books`` class.

Only the columns the harvester reads or writes are modelled. Field names
are snake_case; aliases are the Parse column names, so rows validate
straight from the REST API and dump back with ``by_alias=True``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, RootModel, field_validator

from .config import Environment

logger = logging.getLogger(__name__)

BOOKS_CLASS = "books"
UPDATE_SOURCE = "bloomHarvester"

# Distribution channels with a "show" entry
CHANNELS = ("epub", "pdf", "bloomReader", "readOnline")
HARVESTER_FLAG = "harvester"

COMPUTED_LEVEL_TAG = "computedLevel"

_NULL_PHASH = re.compile(r"^0x0+$")


class HarvestState(str, Enum):
    """Lifecycle label stored in ``harvestState``."""

    NEW = "New"
    UPDATED = "Updated"
    REQUESTED = "Requested"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    FAILED = "Failed"


class ParseDate(BaseModel):
    """Parse's JSON encoding of a date."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(default="Date", alias="__type")
    iso: str

    @classmethod
    def from_datetime(cls, value: datetime) -> "ParseDate":
        value = value.astimezone(timezone.utc)
        return cls(iso=value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z")

    def to_datetime(self) -> datetime:
        return datetime.strptime(self.iso, "%Y-%m-%dT%H:%M:%S.%fZ").replace(
            tzinfo=timezone.utc
        )


class User(BaseModel):
    """Pointer to a row of the Parse ``_User`` class."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_id: Optional[str] = Field(default=None, alias="objectId")


class VisibilityFlags(RootModel[Dict[str, Dict[str, bool]]]):
    """The ``show`` column: channel -> {actor -> bool}.

    Other actors (user, librarian) own their own sub-flags. The harvester
    only ever writes its ``harvester`` sub-flag and leaves the rest as is.
    """

    root: Dict[str, Dict[str, bool]] = Field(default_factory=dict)

    def get(self, channel: str) -> Dict[str, bool]:
        return dict(self.root.get(channel) or {})

    def set_harvester(self, channel: str, value: bool) -> None:
        if channel not in CHANNELS:
            raise ValueError(f"Unknown distribution channel: {channel}")
        flags = self.get(channel)
        flags[HARVESTER_FLAG] = value
        self.root[channel] = flags


class LogLevel(str, Enum):
    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"


class LogType(str, Enum):
    MISSING_FONT = "MissingFont"
    PROCESSING_ERROR = "ProcessingError"
    WRITE_BACK_ERROR = "WriteBackError"


@dataclass(frozen=True)
class LogEntry:
    """One line of ``harvestLog``, stored as ``"<Level> <Type>: <message>"``."""

    level: LogLevel
    type: LogType
    message: str

    _PATTERN = re.compile(r"^(\w+) (\w+): (.*)$", re.DOTALL)

    def __str__(self) -> str:
        return f"{self.level.value} {self.type.value}: {self.message}"

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["LogEntry"]:
        """Parse a stored entry; returns None for anything unrecognised."""
        if not text:
            return None
        match = cls._PATTERN.match(text.strip())
        if not match:
            return None
        try:
            return cls(LogLevel(match.group(1)), LogType(match.group(2)), match.group(3))
        except ValueError:
            return None


# Columns the harvester is allowed to write
WRITEABLE_FIELDS = frozenset(
    {
        "harvest_state",
        "harvester_id",
        "harvester_major_version",
        "harvester_minor_version",
        "harvest_started_at",
        "harvest_log",
        "features",
        "tags",
        "show",
        "phash",
        "warnings",
    }
)


class HarvestItem(BaseModel):
    """A book row as seen by the harvester."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_id: Optional[str] = Field(default=None, alias="objectId")
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    title: Optional[str] = None
    in_circulation: Optional[bool] = Field(default=None, alias="inCirculation")
    uploader: Optional[User] = None

    # Harvester-owned columns
    harvest_state: Optional[str] = Field(default=None, alias="harvestState")
    harvester_id: Optional[str] = Field(default=None, alias="harvesterId")
    harvester_major_version: int = Field(default=0, alias="harvesterMajorVersion")
    harvester_minor_version: int = Field(default=0, alias="harvesterMinorVersion")
    harvest_started_at: Optional[ParseDate] = Field(default=None, alias="harvestStartedAt")
    harvest_log: List[str] = Field(default_factory=list, alias="harvestLog")

    features: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    show: VisibilityFlags = Field(default_factory=VisibilityFlags)
    phash: Optional[str] = Field(default=None, alias="phashOfFirstContentImage")
    warnings: List[str] = Field(default_factory=list)

    _db_snapshot: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @field_validator("harvest_log", "features", "tags", "warnings", "show", mode="before")
    @classmethod
    def _none_as_empty(cls, value, info):
        if value is None:
            return {} if info.field_name == "show" else []
        return value

    # --- identity -----------------------------------------------------------

    @property
    def identity_key(self) -> Optional[str]:
        return self.object_id

    @property
    def owner_key(self) -> Optional[str]:
        return self.uploader.object_id if self.uploader else None

    # --- pending updates ------------------------------------------------------

    def _dump_writeable(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, include=set(WRITEABLE_FIELDS))

    def mark_as_database_version(self) -> None:
        """Remember the current writeable values as what the backend holds."""
        self._db_snapshot = self._dump_writeable()

    def pending_updates(self) -> Dict[str, Any]:
        """Writeable columns changed since ``mark_as_database_version``.

        Non-empty results carry ``updateSource`` so the backend can tell a
        harvester write from a desktop upload.
        """
        current = self._dump_writeable()
        snapshot = self._db_snapshot or {}
        updates = {
            key: value
            for key, value in current.items()
            if key not in snapshot or snapshot[key] != value
        }
        if updates:
            updates["updateSource"] = UPDATE_SOURCE
        return updates

    # --- tags -----------------------------------------------------------------

    def get_tag_dictionary(self) -> Dict[str, List[str]]:
        """Group ``key:value`` tags by key, keeping order and duplicates."""
        result: Dict[str, List[str]] = {}
        for tag in self.tags:
            parsed = _split_tag(tag)
            if parsed is None:
                continue
            key, value = parsed
            values = result.setdefault(key, [])
            if value is not None:
                values.append(value)
        return result

    def _write_tags(self, tag_dict: Dict[str, List[str]]) -> None:
        tags = []
        for key, values in tag_dict.items():
            if not values:
                tags.append(key)
            tags.extend(f"{key}:{value}" for value in values)
        self.tags = tags

    def add_tag(self, tag: str) -> None:
        """Merge a ``key:value`` tag into the values already held for its key."""
        parsed = _split_tag(tag)
        if parsed is None:
            return
        key, value = parsed
        tag_dict = self.get_tag_dictionary()
        values = tag_dict.setdefault(key, [])
        if value is not None:
            values.append(value)
        self._write_tags(tag_dict)

    def set_tag(self, key: str, value: str) -> None:
        """Set a tag value.

        A key holding exactly one value has it replaced. A key holding
        several values gets the new one appended to the list.
        """
        key, value = key.strip(), value.strip()
        tag_dict = self.get_tag_dictionary()
        values = tag_dict.setdefault(key, [])
        if len(values) == 1:
            values[0] = value
        else:
            values.append(value)
        self._write_tags(tag_dict)

    def set_computed_level(self, level: int) -> None:
        self.set_tag(COMPUTED_LEVEL_TAG, str(level))

    # --- visibility -----------------------------------------------------------

    def set_harvester_evaluation(self, channel: str, value: bool) -> None:
        self.show.set_harvester(channel, value)

    # --- log entries ----------------------------------------------------------

    def get_valid_log_entries(self) -> List[LogEntry]:
        return [entry for entry in map(LogEntry.parse, self.harvest_log) if entry]

    def get_missing_fonts(self) -> List[str]:
        return [
            entry.message
            for entry in self.get_valid_log_entries()
            if entry.type == LogType.MISSING_FONT
        ]

    def append_log_entry(self, entry: LogEntry) -> None:
        self.harvest_log = [*self.harvest_log, str(entry)]

    # --- classification results ---------------------------------------------

    def update_perceptual_hash(self, path: str | Path) -> None:
        """Read a perceptual hash digest from ``path``.

        A literal ``null`` or an all-zero digest means no usable image and is
        stored as None.
        """
        digest = Path(path).read_text(encoding="utf-8").strip()
        if not digest or digest == "null" or _NULL_PHASH.match(digest):
            self.phash = None
        else:
            self.phash = digest

    def update_metadata_if_needed(self, features: Iterable[str]) -> None:
        features = list(features)
        if features != self.features:
            self.features = features

    # --- diagnostics ----------------------------------------------------------

    def detail_link(self, environment: Environment) -> Optional[str]:
        """Link to the book's page on Bloom Library, None without an ID."""
        if not self.object_id or not self.object_id.strip():
            return None
        subdomain = "" if environment == Environment.PROD else f"{environment.value}."
        return f"https://{subdomain}bloomlibrary.org/browse/detail/{self.object_id}"

    def diagnostic_info(self, environment: Environment) -> str:
        return (
            f"BookId: {self.object_id}\n"
            f"URL: {self.detail_link(environment) or 'No URL'}\n"
            f"Title: {self.title}"
        )


def _split_tag(tag: Optional[str]) -> Optional[tuple[str, Optional[str]]]:
    if tag is None or not tag.strip():
        return None
    if ":" not in tag:
        return tag.strip(), None
    key, value = tag.split(":", 1)
    return key.strip(), value.strip()


def find_book_warnings(item: Optional[HarvestItem]) -> List[str]:
    """Warnings to display for a book on Bloom Library."""
    warnings: List[str] = []
    if item is None:
        return warnings

    if not item.base_url or not item.base_url.strip():
        warnings.append("Missing baseUrl")

    if item.base_url and "gmail" in item.base_url:
        warnings.append("Gmail user")

    return warnings
