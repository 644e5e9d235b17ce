from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

from filemerger.core.logging import configure_logging

logger = configure_logging()


class NotificationKind(str, Enum):
    file_list_changed = "file-list-changed"
    progress = "progress"
    succeeded = "succeeded"
    failed = "failed"


@dataclass
class Notification:
    seq: int
    kind: NotificationKind
    payload: Dict[str, Any]
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "payload": self.payload,
            "ts": self.ts.isoformat(),
        }


Listener = Callable[[Notification], None]


class NotificationLog:
    """Ordered state notifications for the presentation layer.

    Clients poll the log by sequence number; in-process listeners are called
    synchronously as notifications are emitted.
    """

    def __init__(self, max_entries: int = 500) -> None:
        self._entries: List[Notification] = []
        self._listeners: List[Listener] = []
        self._next_seq = 1
        self.max_entries = max_entries

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, kind: NotificationKind, **payload: Any) -> Notification:
        notification = Notification(seq=self._next_seq, kind=kind, payload=payload)
        self._next_seq += 1
        self._entries.append(notification)
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed for %s", kind.value)
        return notification

    def since(self, seq: int = 0) -> List[Notification]:
        return [entry for entry in self._entries if entry.seq > seq]

    def last(self, kind: NotificationKind | None = None) -> Notification | None:
        for entry in reversed(self._entries):
            if kind is None or entry.kind == kind:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._entries)
