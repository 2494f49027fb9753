"""
Alert noise suppression.

Keeps a rolling record of alert occurrences and decides whether each new
one should reach an operator or be silenced for being too frequent.

Usage:
    gate = AlertGate()
    if not gate.record_and_should_silence(AlertRecord.for_item(book)):
        await notifier.notify(subject, body)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Deque, Optional

if TYPE_CHECKING:
    from .models import HarvestItem

logger = logging.getLogger(__name__)

MAX_ALERT_COUNT = 5
LOOKBACK_WINDOW = timedelta(hours=24)

# Harvest states that get a per-book allowance beyond the general quota
FRESH_STATES = frozenset({"New", "Updated"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertRecord:
    """A single alert occurrence.

    ``timestamp`` is stamped by the gate when left unset.
    """

    item_key: Optional[str] = None
    item_state: Optional[str] = None
    owner_key: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def for_item(cls, item: Optional["HarvestItem"]) -> "AlertRecord":
        """Build an occurrence from a book's current identity and state."""
        if item is None:
            return cls()
        return cls(
            item_key=item.identity_key,
            item_state=item.harvest_state,
            owner_key=item.owner_key,
        )


class AlertGate:
    """Sliding-window alert rate limiter.

    Records are kept in ascending timestamp order. Every occurrence is
    recorded, silenced or not, so the window reflects true alert volume.
    All access goes through one lock; pruning and the silencing decision
    happen together under it.
    """

    def __init__(
        self,
        max_alert_count: int = MAX_ALERT_COUNT,
        window: timedelta = LOOKBACK_WINDOW,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_alert_count = max_alert_count
        self.window = window
        self._clock = clock
        self._records: Deque[AlertRecord] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def record_and_should_silence(
        self, occurrence: Optional[AlertRecord] = None
    ) -> bool:
        """Record an alert and return True if it should be silenced.

        Never raises. A timestamp older than the newest record (a wall
        clock stepped back, say) is moved up to the newest record's, so
        the buffer stays sorted.
        """
        occurrence = occurrence or AlertRecord()

        with self._lock:
            now = self._clock()
            stamp = occurrence.timestamp or now
            if self._records and stamp < self._records[-1].timestamp:
                logger.debug(
                    f"Alert timestamp {stamp} is older than {self._records[-1].timestamp}"
                )
                stamp = self._records[-1].timestamp
            if stamp != occurrence.timestamp:
                occurrence = replace(occurrence, timestamp=stamp)
            self._records.append(occurrence)

            self._prune(now)
            silenced = self._is_silenced(occurrence)

        if silenced:
            logger.warning("An alert was silenced (too many alerts).")
        return silenced

    def reset(self) -> None:
        """Forget all recorded alerts. Test harnesses only."""
        with self._lock:
            self._records.clear()

    def _prune(self, now: datetime) -> None:
        # Precondition: records are in ascending timestamp order
        start = now - self.window
        while self._records and self._records[0].timestamp < start:
            self._records.popleft()

    def _is_silenced(self, occurrence: AlertRecord) -> bool:
        # New or Updated books may report even after the general quota is
        # used up, but only once per book and at most max per uploader.
        # Without a book identity the general quota applies.
        if occurrence.item_state in FRESH_STATES and occurrence.item_key is not None:
            for_this_book = sum(
                1 for r in self._records if r.item_key == occurrence.item_key
            )
            if for_this_book > 1:
                return True
            if occurrence.owner_key is None:
                return False
            for_uploader = sum(
                1 for r in self._records if r.owner_key == occurrence.owner_key
            )
            return for_uploader > self.max_alert_count

        return len(self._records) > self.max_alert_count
