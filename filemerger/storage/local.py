import shutil
from pathlib import Path
from typing import Iterable, Optional, Protocol
from uuid import uuid4

from fastapi import UploadFile

from filemerger.core.config import get_settings
from filemerger.core.errors import SinkError


class OutputSink(Protocol):
    """Receives the finished PDF and makes it downloadable under ``filename``."""

    def deliver(self, data: bytes, filename: str) -> str:
        """Store the artifact and return the URL it can be downloaded from."""


class LocalStorage:
    """Per-session upload folders, plus the public folder merged PDFs are published to."""

    def __init__(self) -> None:
        settings = get_settings()
        self.temp_dir = settings.temp_dir
        self.download_root = settings.public_dir / "downloads"

        for directory in (self.temp_dir, self.download_root):
            directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _generate_filename(suffix: str) -> str:
        suffix = suffix if suffix.startswith(".") else f".{suffix.lstrip('.')}"
        return f"{uuid4().hex}{suffix}"

    def session_dir(self, session_id: str) -> Path:
        directory = self.temp_dir / session_id
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def save_upload(self, upload: UploadFile, *, directory: Optional[Path] = None) -> Path:
        """Copy an upload to disk under a random name; the original name lives on the CandidateFile."""
        suffix = Path(upload.filename or "").suffix or ".bin"
        target = (directory or self.temp_dir) / self._generate_filename(suffix)
        upload.file.seek(0)
        with target.open("wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)
        upload.file.seek(0)
        return target

    def deliver(self, data: bytes, filename: str) -> str:
        """Publish a merge result in the downloads folder and return its URL."""
        target = self.download_root / Path(filename).name
        if target.exists():
            target = self.download_root / f"{target.stem}-{uuid4().hex[:6]}{target.suffix}"
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise SinkError(f"Could not save {filename}: {exc}") from exc
        return f"/downloads/{target.name}"

    def cleanup(self, paths: Iterable[Path]) -> None:
        for path in paths:
            if path and path.exists():
                path.unlink(missing_ok=True)

    def remove_dir(self, directory: Path) -> None:
        shutil.rmtree(directory, ignore_errors=True)
