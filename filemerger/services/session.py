from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence
from uuid import uuid4

from fastapi import UploadFile

from filemerger.core.config import Settings, get_settings
from filemerger.core.errors import MergeInProgressError, OrderingDisabledError
from filemerger.core.logging import configure_logging
from filemerger.services.drag_reorder import DragReorderController, Effect, Gesture
from filemerger.services.events import NotificationLog
from filemerger.services.file_list import OrderedFileList
from filemerger.services.merge_service import MergeOrchestrator, MergeRun
from filemerger.services.selection import expand_directory, store_uploads
from filemerger.storage.local import LocalStorage
from filemerger.storage.registry import CandidateFile

logger = configure_logging()


class MergeSession:
    """Everything one user works with: selection, ordering, drag state and merge run.

    Commands that touch the selection are refused while a run is converting
    or finalizing.
    """

    def __init__(
        self,
        storage: LocalStorage,
        settings: Optional[Settings] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self.storage = storage
        self.settings = settings or get_settings()
        self.notifications = NotificationLog()
        self.file_list = OrderedFileList(self.notifications)
        self.drag = DragReorderController(self.file_list)
        self.orchestrator = MergeOrchestrator(storage, self.notifications, self.settings)
        self.created_at = datetime.now(timezone.utc)
        self.last_seen = self.created_at

    # ------------------------------------------------------------------
    @property
    def is_busy(self) -> bool:
        return self.orchestrator.is_busy

    @property
    def run(self) -> MergeRun:
        return self.orchestrator.current

    @property
    def upload_dir(self) -> Path:
        return self.storage.session_dir(self.session_id)

    def touch(self) -> None:
        self.last_seen = datetime.now(timezone.utc)

    def _ensure_idle(self) -> None:
        if self.is_busy:
            raise MergeInProgressError("A merge is in progress; wait for it to finish.")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    async def select_uploads(self, uploads: Sequence[UploadFile], *, append: bool = False) -> List[CandidateFile]:
        self._ensure_idle()
        accepted, rejected = await store_uploads(uploads, self.storage, self.upload_dir)
        try:
            self._accept(accepted, append=append)
        except MergeInProgressError:
            # A run started while the uploads were being written.
            self.storage.cleanup(file.path for file in accepted)
            raise
        return rejected

    async def import_directory(self, root: Path, *, append: bool = False) -> List[CandidateFile]:
        self._ensure_idle()
        accepted, rejected = await expand_directory(root)
        self._accept(accepted, append=append)
        return rejected

    def select(self, files: Sequence[CandidateFile], *, append: bool = False) -> None:
        self._ensure_idle()
        self._accept(files, append=append)

    def _accept(self, files: Sequence[CandidateFile], *, append: bool) -> None:
        self.drag.cancel()
        self.orchestrator.reset()
        if append:
            self.file_list.append_batch(files)
        else:
            previous = self.file_list.selection
            self.file_list.set_all(files)
            self._discard(previous)
        logger.info("Session %s now holds %s file(s)", self.session_id, len(self.file_list))

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def set_ordering(self, enabled: bool) -> None:
        self._ensure_idle()
        self.drag.cancel()
        self.file_list.set_ordering(enabled)

    def reorder(
        self,
        source_index: int,
        *,
        insertion_point: Optional[int] = None,
        target_index: Optional[int] = None,
    ) -> bool:
        """Move a file to an insertion point, or swap it with the file at ``target_index``."""
        self._ensure_idle()
        if not self.file_list.ordering_enabled:
            raise OrderingDisabledError("Enable ordering mode before reordering files.")
        self.drag.cancel()
        if insertion_point is not None:
            return self.file_list.move_to_insertion_point(source_index, insertion_point)
        if target_index is not None:
            return self.file_list.swap(source_index, target_index)
        raise ValueError("Either insertion_point or target_index is required.")

    def gesture(self, gesture: Gesture) -> Effect:
        self._ensure_idle()
        return self.drag.handle(gesture)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------
    async def merge(self) -> MergeRun:
        self.drag.cancel()
        return await self.orchestrator.run(self.file_list.files_for_merge())

    async def retry(self) -> MergeRun:
        """Start over from the current selection; a failed run never clears it."""
        self.orchestrator.reset()
        return await self.merge()

    async def redeliver(self) -> MergeRun:
        return await self.orchestrator.redeliver()

    def reset(self) -> None:
        self._ensure_idle()
        self.drag.cancel()
        self.orchestrator.reset()
        previous = self.file_list.selection
        self.file_list.set_ordering(False)
        self.file_list.clear()
        self._discard(previous)

    def dispose(self) -> None:
        self.storage.remove_dir(self.storage.temp_dir / self.session_id)

    # ------------------------------------------------------------------
    def _discard(self, files: Sequence[CandidateFile]) -> None:
        """Delete stored uploads; imported originals are left alone."""
        upload_dir = self.storage.temp_dir / self.session_id
        self.storage.cleanup(file.path for file in files if file.path.parent == upload_dir)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "ordering_enabled": self.file_list.ordering_enabled,
            "files": self.file_list.snapshot(),
            "run": self.run.to_dict(),
            "created_at": self.created_at.isoformat(),
        }
