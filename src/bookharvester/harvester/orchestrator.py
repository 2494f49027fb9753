"""
Harvest Orchestrator.

Drives each book through Requested -> InProgress -> Done | Failed:

1. Checkpoint InProgress (state, harvester id, start time, version)
2. Download the book and hand it to the converter
3. Upload the artifacts and checkpoint Done with the classification results

Any error marks the book Failed (best effort), is reported to the incident
tracker, and goes through the AlertGate before an operator is notified.
The original error is always re-raised.
"""

import logging
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote

from .alerts import AlertGate, AlertRecord, utc_now
from .config import Environment, HarvesterConfig
from .errors import MissingIdentityError
from .interfaces import (
    Artifact,
    Backend,
    ConversionResult,
    Converter,
    IncidentTracker,
    Notifier,
    Storage,
)
from .models import (
    BOOKS_CLASS,
    HarvestItem,
    HarvestState,
    LogEntry,
    LogLevel,
    LogType,
    ParseDate,
    find_book_warnings,
)
from .urls import BookUrlComponents, remove_book_title_from_base_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureOutcome:
    """What happened while handling a failed book.

    ``error`` is the processing error and is what callers see. The other
    errors are secondary and only ever logged.
    """

    item_key: Optional[str]
    error: BaseException
    write_back_error: Optional[BaseException] = None
    incident_error: Optional[BaseException] = None
    notify_error: Optional[BaseException] = None
    gate_error: Optional[BaseException] = None
    silenced: bool = False


@dataclass
class HarvestSummary:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    silenced: int = 0
    started_at: str = field(default_factory=lambda: utc_now().isoformat())
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "silenced": self.silenced,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_seconds": self.duration_seconds,
        }


class HarvestOrchestrator:
    """Processes books one at a time against the shared backend.

    The AlertGate is owned by whoever builds the orchestrator and lives as
    long as the batch run (or the process, when reused between runs).
    """

    def __init__(
        self,
        backend: Backend,
        storage: Storage,
        converter: Converter,
        *,
        worker_id: str,
        config: Optional[HarvesterConfig] = None,
        alert_gate: Optional[AlertGate] = None,
        incidents: Optional[IncidentTracker] = None,
        notifier: Optional[Notifier] = None,
        environment: Environment = Environment.DEV,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.storage = storage
        self.converter = converter
        self.worker_id = worker_id
        self.config = config or HarvesterConfig()
        if alert_gate is None:
            alert_gate = AlertGate(
                max_alert_count=self.config.alerts.max_alert_count,
                window=timedelta(hours=self.config.alerts.window_hours),
            )
        self.alert_gate = alert_gate
        self.incidents = incidents
        self.notifier = notifier
        self.environment = environment
        self._clock = clock
        self.last_failure: Optional[FailureOutcome] = None

    # =========================================================================
    # Batch driver
    # =========================================================================

    async def harvest_all(
        self, max_items: Optional[int] = None, query_where: Optional[str] = None
    ) -> HarvestSummary:
        """Process every book matching ``query_where``, up to ``max_items``."""
        if max_items is None:
            max_items = self.config.max_items
        if query_where is None:
            query_where = self.config.query_where

        logger.info("HarvestAll Start")
        started = time.monotonic()
        summary = HarvestSummary()

        limit = max_items if max_items > 0 else None
        async for item in self.backend.get_books(where=query_where, limit=limit):
            try:
                await self.process_one(item)
                summary.succeeded += 1
            except Exception:
                summary.failed += 1
                if self.last_failure is not None and self.last_failure.silenced:
                    summary.silenced += 1
                if not self.config.continue_on_error:
                    raise
            finally:
                summary.processed += 1

            if limit is not None and summary.processed >= limit:
                break

        summary.finished_at = utc_now().isoformat()
        summary.duration_seconds = round(time.monotonic() - started, 3)
        logger.info("HarvestAll took %.1f seconds.", summary.duration_seconds)
        logger.info("HarvestAll End - Success")
        return summary

    async def report_warnings(self) -> List[str]:
        """Log every book that currently carries warnings."""
        lines = []
        async for item in self.backend.get_books_with_warnings():
            line = f"{item.object_id or ''} ({item.base_url}): {len(item.warnings)} warnings."
            logger.info(line)
            lines.append(line)
        return lines

    # =========================================================================
    # Per-book state machine
    # =========================================================================

    async def process_one(self, item: HarvestItem) -> None:
        """Run one book through the harvest.

        Raises whatever processing raised, after the failure bookkeeping.
        """
        # The alert keeps the label the book arrived with, so New/Updated
        # books keep their allowance after the InProgress checkpoint.
        arrival_state = item.harvest_state
        self.last_failure = None
        try:
            logger.info("ProcessOneBook Start")
            logger.info("Processing: %s", item.base_url)

            await self._mark_in_progress(item)

            decoded_url = unquote(item.base_url or "")
            url_without_title = remove_book_title_from_base_url(decoded_url)

            previously_missing = item.get_missing_fonts()
            if previously_missing:
                logger.info("Previously missing fonts: %s", ", ".join(previously_missing))

            logger.info("Download Book")
            download_root = self._download_root()
            logger.debug("Download Dir: %s", download_root)
            book_dir = await self.storage.download_book(url_without_title, download_root)
            if self.config.read_only:
                return

            with tempfile.TemporaryDirectory(prefix="BookHarvesterStaging") as staging:
                result = await self.converter.convert(item, Path(book_dir), Path(staging))
                item.warnings = find_book_warnings(item)
                self._apply_result(item, result)
                await self._upload_artifacts(decoded_url, result.artifacts)

            await self._mark_done(item)
            logger.info("ProcessOneBook End - Success")
        except Exception as error:
            self.last_failure = await self._handle_failure(item, error, arrival_state)
            raise

    async def _mark_in_progress(self, item: HarvestItem) -> None:
        if not item.identity_key:
            raise MissingIdentityError(item.base_url)

        started_at = ParseDate.from_datetime(self._clock())
        updates = {
            "harvestState": HarvestState.IN_PROGRESS.value,
            "harvesterId": self.worker_id,
            "harvestStartedAt": started_at.model_dump(by_alias=True),
            "harvesterMajorVersion": self.config.major_version,
            "harvesterMinorVersion": self.config.minor_version,
        }
        await self.backend.update_object(BOOKS_CLASS, item.identity_key, updates)

        item.harvest_state = HarvestState.IN_PROGRESS.value
        item.harvester_id = self.worker_id
        item.harvest_started_at = started_at
        item.harvester_major_version = self.config.major_version
        item.harvester_minor_version = self.config.minor_version
        item.mark_as_database_version()

    def _apply_result(self, item: HarvestItem, result: ConversionResult) -> None:
        if result.computed_level is not None:
            item.set_computed_level(result.computed_level)
        for channel, value in result.visibility.items():
            item.set_harvester_evaluation(channel, value)
        if result.phash_path is not None:
            item.update_perceptual_hash(result.phash_path)
        if result.features is not None:
            item.update_metadata_if_needed(result.features)
        for font in result.missing_fonts:
            item.append_log_entry(LogEntry(LogLevel.WARN, LogType.MISSING_FONT, font))

    async def _upload_artifacts(self, decoded_url: str, artifacts: List[Artifact]) -> None:
        if not artifacts:
            return
        folder = BookUrlComponents.from_url(decoded_url).folder
        for artifact in artifacts:
            destination = f"{folder}/{artifact.destination}" if artifact.destination else folder
            logger.info("Upload %s", artifact.label or artifact.path.name)
            if artifact.is_directory:
                await self.storage.upload_directory(artifact.path, destination)
            else:
                await self.storage.upload_file(artifact.path, destination)

    async def _mark_done(self, item: HarvestItem) -> None:
        item.harvest_state = HarvestState.DONE.value
        updates = item.pending_updates()
        updates["harvestState"] = HarvestState.DONE.value
        await self.backend.update_object(BOOKS_CLASS, item.identity_key, updates)
        item.mark_as_database_version()

    # =========================================================================
    # Failure path
    # =========================================================================

    async def _handle_failure(
        self, item: HarvestItem, error: Exception, arrival_state: Optional[str]
    ) -> FailureOutcome:
        context = f'Unhandled exception thrown while processing book "{item.base_url}"'
        logger.error("%s: %s", context, error)

        incident_error = None
        if self.incidents is not None:
            try:
                await self.incidents.submit(
                    error, f"{context}\n{item.diagnostic_info(self.environment)}"
                )
            except Exception as e:
                incident_error = e
                logger.warning("Incident submission failed: %s", e, exc_info=True)

        write_back_error = None
        if item.identity_key:
            try:
                await self.backend.update_object(
                    BOOKS_CLASS,
                    item.identity_key,
                    {
                        "harvestState": HarvestState.FAILED.value,
                        "harvesterId": self.worker_id,
                    },
                )
            except Exception as e:
                write_back_error = e
                logger.warning(
                    "Could not mark book %s Failed: %s", item.identity_key, e, exc_info=True
                )
        else:
            logger.warning("Book has no objectId, not marking it Failed: %s", item.base_url)

        gate_error = None
        silenced = False
        try:
            silenced = self.alert_gate.record_and_should_silence(
                AlertRecord(
                    item_key=item.identity_key,
                    item_state=arrival_state,
                    owner_key=item.owner_key,
                )
            )
        except Exception as e:
            gate_error = e
            logger.warning("Alert gate failed, notifying anyway: %s", e, exc_info=True)

        notify_error = None
        if not silenced and self.notifier is not None:
            try:
                await self.notifier.notify(
                    f"Harvest failed: {item.title or item.base_url}",
                    f"{context}\n{item.diagnostic_info(self.environment)}\n\n{error!r}",
                )
            except Exception as e:
                notify_error = e
                logger.warning("Alert notification failed: %s", e, exc_info=True)

        return FailureOutcome(
            item_key=item.identity_key,
            error=error,
            write_back_error=write_back_error,
            incident_error=incident_error,
            notify_error=notify_error,
            gate_error=gate_error,
            silenced=silenced,
        )

    def _download_root(self) -> Path:
        if self.config.download_root:
            return Path(self.config.download_root)
        return Path(tempfile.gettempdir()) / "BookHarvester" / self.worker_id
