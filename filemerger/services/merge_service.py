from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from filemerger.core.config import Settings, get_settings
from filemerger.core.errors import FinalizationError, MergeInProgressError, MergerError, SinkError, ValidationError
from filemerger.core.logging import configure_logging
from filemerger.services.converters import (
    ConversionOutcome,
    OutcomeKind,
    PageConverter,
    build_converters,
    render_error_page,
)
from filemerger.services.dispatcher import ConverterKind, select_converter
from filemerger.services.events import NotificationKind, NotificationLog
from filemerger.services.output_document import OutputDocument
from filemerger.services.text_layout import PageLayout
from filemerger.storage.local import OutputSink
from filemerger.storage.registry import CandidateFile
from filemerger.utils.file_utils import is_acceptable

logger = configure_logging()


class RunStatus(str, Enum):
    idle = "idle"
    validating = "validating"
    converting = "converting"
    finalizing = "finalizing"
    succeeded = "succeeded"
    failed = "failed"


ACTIVE_STATUSES = {RunStatus.validating, RunStatus.converting, RunStatus.finalizing}


@dataclass
class MergeRun:
    """State of one merge run, from validation to the finished artifact."""

    status: RunStatus = RunStatus.idle
    current_file_index: Optional[int] = None
    percent_complete: int = 0
    message: str = ""
    outcomes: List[ConversionOutcome] = field(default_factory=list)
    page_count: int = 0
    result_bytes: Optional[bytes] = field(default=None, repr=False)
    result_filename: Optional[str] = None
    download_url: Optional[str] = None
    error_message: Optional[str] = None
    delivery_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def outcome_counts(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in OutcomeKind}
        for outcome in self.outcomes:
            counts[outcome.kind.value] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "current_file_index": self.current_file_index,
            "percent_complete": self.percent_complete,
            "message": self.message,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "outcome_counts": self.outcome_counts(),
            "page_count": self.page_count,
            "result_filename": self.result_filename,
            "size_bytes": len(self.result_bytes) if self.result_bytes is not None else None,
            "download_url": self.download_url,
            "error_message": self.error_message,
            "delivery_error": self.delivery_error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class MergeOrchestrator:
    """Drives merge runs: validate, convert each file in order, finalize, deliver.

    A file that fails to convert becomes an error page and the run moves on;
    only an empty batch or a failure to write the merged document fails the
    whole run. Only one run may own the output document at a time.
    """

    def __init__(
        self,
        sink: OutputSink,
        notifications: Optional[NotificationLog] = None,
        settings: Optional[Settings] = None,
        converters: Optional[Dict[ConverterKind, PageConverter]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.layout = PageLayout.from_settings(self.settings)
        self.converters = converters or build_converters(self.layout, self.settings)
        self.sink = sink
        self.notifications = notifications if notifications is not None else NotificationLog()
        self.clock = clock
        self.current = MergeRun()

    @property
    def is_busy(self) -> bool:
        return self.current.active

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    async def run(self, files: Sequence[CandidateFile]) -> MergeRun:
        if self.is_busy:
            raise MergeInProgressError("A merge is already in progress.")

        run = self.current = MergeRun(status=RunStatus.validating, started_at=_now())
        try:
            self._progress(0, "Preparing files...")
            accepted = [file for file in files if is_acceptable(file)]
            if len(accepted) != len(files):
                logger.info("Skipped %s invalid file(s) before merging", len(files) - len(accepted))
            if not accepted:
                raise ValidationError("No valid files to process.")

            run.status = RunStatus.converting
            self._progress(10, "Loading PDF library...")
            document = OutputDocument()
            await self._convert_all(accepted, document)

            run.status = RunStatus.finalizing
            run.current_file_index = None
            self._progress(90, "Finalizing PDF...")
            data = await asyncio.to_thread(document.finalize)
        except (ValidationError, FinalizationError) as exc:
            return self._fail(str(exc))
        except Exception as exc:
            logger.exception("Merge run failed unexpectedly")
            return self._fail(f"Failed to create PDF: {exc}")

        run.result_bytes = data
        run.page_count = document.page_count
        run.result_filename = f"{self.settings.output_prefix}-{int(self.clock() * 1000)}.pdf"
        run.status = RunStatus.succeeded
        run.finished_at = _now()
        self._progress(100, "PDF created successfully")
        logger.info(
            "Merged %s file(s) into %s (%s pages, %s)",
            len(run.outcomes),
            run.result_filename,
            run.page_count,
            run.outcome_counts(),
        )

        await self._deliver(run)
        return run

    async def _convert_all(self, files: List[CandidateFile], document: OutputDocument) -> None:
        run = self.current
        total = len(files)
        self._progress(self._band(0, total), f"Converting {total} file(s)...")
        for index, file in enumerate(files):
            run.current_file_index = index
            outcome = await self._convert_one(file, document)
            run.outcomes.append(outcome)
            self._progress(self._band(index + 1, total), f"Processed file {index + 1} of {total}: {file.name}")

    async def _convert_one(self, file: CandidateFile, document: OutputDocument) -> ConversionOutcome:
        converter = self.converters[select_converter(file)]
        try:
            data = await asyncio.to_thread(file.read_bytes)
            return await asyncio.to_thread(converter.convert, file, data, document)
        except Exception as exc:
            logger.exception("Could not convert %s", file.name)
            reason = str(exc) or exc.__class__.__name__
            try:
                document.append_pdf_bytes(render_error_page(file, reason, self.layout))
            except Exception:
                logger.exception("Could not add an error page for %s", file.name)
                return ConversionOutcome.error_page(file.name, reason, page_count=0)
            return ConversionOutcome.error_page(file.name, reason)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    async def _deliver(self, run: MergeRun) -> None:
        try:
            run.download_url = await asyncio.to_thread(self.sink.deliver, run.result_bytes, run.result_filename)
        except (SinkError, OSError) as exc:
            run.delivery_error = str(exc)
            logger.error("Delivery of %s failed: %s", run.result_filename, exc)
            self.notifications.emit(
                NotificationKind.failed,
                message=f"Failed to download PDF: {exc}",
                filename=run.result_filename,
                artifact_retained=True,
            )
            return

        run.delivery_error = None
        logger.info("Delivered %s to %s", run.result_filename, run.download_url)
        self.notifications.emit(
            NotificationKind.succeeded,
            filename=run.result_filename,
            download_url=run.download_url,
            page_count=run.page_count,
            outcomes=[outcome.to_dict() for outcome in run.outcomes],
        )

    async def redeliver(self) -> MergeRun:
        """Hand the retained artifact of the last successful run to the sink again."""
        run = self.current
        if run.status is not RunStatus.succeeded or run.result_bytes is None:
            raise MergerError("No PDF data available for download.")
        await self._deliver(run)
        return run

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------
    def reset(self) -> None:
        if self.is_busy:
            raise MergeInProgressError("A merge is in progress and cannot be reset.")
        self.current = MergeRun()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _band(self, processed: int, total: int) -> int:
        start, end = self.settings.progress_band_start, self.settings.progress_band_end
        if total <= 0:
            return start
        return start + round((end - start) * processed / total)

    def _progress(self, percent: int, message: str) -> None:
        run = self.current
        run.percent_complete = percent
        run.message = message
        self.notifications.emit(
            NotificationKind.progress,
            percent=percent,
            message=message,
            status=run.status.value,
        )

    def _fail(self, message: str) -> MergeRun:
        run = self.current
        run.status = RunStatus.failed
        run.error_message = message
        run.current_file_index = None
        run.finished_at = _now()
        logger.warning("Merge run failed: %s", message)
        self.notifications.emit(NotificationKind.failed, message=message)
        return run


def _now() -> datetime:
    return datetime.now(timezone.utc)
