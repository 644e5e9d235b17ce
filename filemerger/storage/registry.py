from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional
from uuid import uuid4

from filemerger.core.config import get_settings
from filemerger.core.errors import SessionNotFoundError
from filemerger.services.dispatcher import kind_label, select_converter
from filemerger.utils.file_utils import file_extension, format_file_size

if TYPE_CHECKING:
    from filemerger.services.session import MergeSession


@dataclass(frozen=True)
class CandidateFile:
    """One selected file. Immutable once accepted into a selection."""

    name: str
    byte_size: int
    mime_hint: str
    last_modified: datetime
    path: Path
    relative_path: str = ""
    file_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if not self.relative_path:
            object.__setattr__(self, "relative_path", self.name)

    @property
    def extension(self) -> str:
        return file_extension(self.name).lower()

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def to_card(self) -> dict:
        return {
            "file_id": self.file_id,
            "filename": self.name,
            "relative_path": self.relative_path,
            "size_bytes": self.byte_size,
            "size_label": format_file_size(self.byte_size),
            "mime_type": self.mime_hint,
            "extension": self.extension.upper() or "FILE",
            "kind": select_converter(self).value,
            "kind_label": kind_label(select_converter(self)),
            "last_modified": self.last_modified.isoformat(),
        }


def register_candidate(
    path: Path,
    filename: str | None = None,
    mime_hint: str | None = None,
    last_modified: Optional[datetime] = None,
) -> CandidateFile:
    """Describe a stored file as a CandidateFile.

    ``filename`` may carry a relative path (directory drops); the display name
    is its last component.
    """
    relative_path = (filename or path.name).replace("\\", "/").lstrip("/")
    name = relative_path.rsplit("/", 1)[-1]
    if mime_hint is None:
        guessed, _ = mimetypes.guess_type(name)
        mime_hint = guessed or ""

    stat = path.stat() if path.exists() else None
    size_bytes = stat.st_size if stat else 0
    if last_modified is None:
        last_modified = (
            datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            if stat
            else datetime.now(timezone.utc)
        )

    return CandidateFile(
        name=name,
        byte_size=size_bytes,
        mime_hint=mime_hint,
        last_modified=last_modified,
        path=path,
        relative_path=relative_path,
    )


_sessions: Dict[str, "MergeSession"] = {}


def _ttl() -> timedelta:
    return timedelta(minutes=get_settings().session_ttl_minutes)


def register_session(session: "MergeSession") -> "MergeSession":
    cleanup()
    _sessions[session.session_id] = session
    return session


def get_session(session_id: str) -> "MergeSession":
    cleanup()
    session = _sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(f"Session {session_id} does not exist or has expired.")
    session.touch()
    return session


def unregister_session(session_id: str) -> None:
    session = _sessions.pop(session_id, None)
    if session is not None:
        session.dispose()


def cleanup() -> None:
    """Drop idle sessions older than the configured time to live."""
    now = datetime.now(timezone.utc)
    ttl = _ttl()
    expired = [
        session_id
        for session_id, session in _sessions.items()
        if now - session.last_seen > ttl and not session.is_busy
    ]
    for session_id in expired:
        unregister_session(session_id)
