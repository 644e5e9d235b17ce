"""Ordered file list: the single source of truth for the selection and its order."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Tuple

from filemerger.services.events import NotificationKind, NotificationLog
from filemerger.storage.registry import CandidateFile


class OrderedFileList:
    """The accepted files in selection order plus a user-defined order.

    The order is kept as indices into the selection, so reordering never
    copies a file. ``files_for_merge()`` honours the custom order only while
    ordering mode is on; otherwise files are processed in selection order.
    """

    def __init__(self, notifications: Optional[NotificationLog] = None) -> None:
        self._selection: Tuple[CandidateFile, ...] = ()
        self._order: List[int] = []
        self.ordering_enabled = False
        self._notifications = notifications

    # ── Accessors ──────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._order)

    def __getitem__(self, index: int) -> CandidateFile:
        return self._selection[self._order[index]]

    def __iter__(self) -> Iterator[CandidateFile]:
        return (self._selection[i] for i in self._order)

    @property
    def files(self) -> List[CandidateFile]:
        """Files in the current (custom) order."""
        return list(self)

    @property
    def selection(self) -> List[CandidateFile]:
        """Files in the order they were selected."""
        return list(self._selection)

    def files_for_merge(self) -> List[CandidateFile]:
        return self.files if self.ordering_enabled else self.selection

    def names(self) -> List[str]:
        return [f.name for f in self]

    # ── Replace / append / clear ───────────────────────────────

    def set_all(self, files: Iterable[CandidateFile]) -> None:
        self._selection = tuple(files)
        self._order = list(range(len(self._selection)))
        self._changed("set")

    def append_batch(self, files: Iterable[CandidateFile]) -> int:
        batch = tuple(files)
        if not batch:
            return 0
        start = len(self._selection)
        self._selection = self._selection + batch
        self._order.extend(range(start, start + len(batch)))
        self._changed("append")
        return len(batch)

    def clear(self) -> None:
        self._selection = ()
        self._order = []
        self._changed("clear")

    def set_ordering(self, enabled: bool) -> None:
        """Switch ordering mode; the custom order survives being switched off."""
        if self.ordering_enabled != enabled:
            self.ordering_enabled = enabled
            self._changed("ordering")

    # ── Reorder ────────────────────────────────────────────────

    def move_to_insertion_point(self, source_index: int, insertion_point: int) -> bool:
        """Move one entry into the gap before ``insertion_point``.

        Insertion points run from 0 (before the first entry) to ``len``
        (after the last). Dropping an entry next to itself changes nothing.
        Returns True when the order changed.
        """
        self._check_index(source_index)
        if not (0 <= insertion_point <= len(self._order)):
            raise IndexError(f"insertion point {insertion_point} out of range")
        if insertion_point in (source_index, source_index + 1):
            return False

        entry = self._order.pop(source_index)
        if source_index < insertion_point:
            insertion_point -= 1
        self._order.insert(insertion_point, entry)
        self._changed("move")
        return True

    def swap(self, index_a: int, index_b: int) -> bool:
        self._check_index(index_a)
        self._check_index(index_b)
        if index_a == index_b:
            return False
        self._order[index_a], self._order[index_b] = self._order[index_b], self._order[index_a]
        self._changed("swap")
        return True

    # ── Helpers ────────────────────────────────────────────────

    def _check_index(self, index: int) -> None:
        if not (0 <= index < len(self._order)):
            raise IndexError(f"index {index} out of range for {len(self._order)} files")

    def snapshot(self) -> List[dict]:
        cards = []
        for position, entry in enumerate(self):
            card = entry.to_card()
            card["position"] = position
            cards.append(card)
        return cards

    def _changed(self, reason: str) -> None:
        if self._notifications is None:
            return
        self._notifications.emit(
            NotificationKind.file_list_changed,
            reason=reason,
            ordering_enabled=self.ordering_enabled,
            files=self.snapshot(),
        )

