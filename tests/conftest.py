import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import List, Optional

# Storage must point somewhere disposable before the settings are cached.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="filemerger-tests-"))
os.environ.setdefault("STORAGE_DIR", str(_TEST_ROOT / "storage"))
os.environ.setdefault("PUBLIC_DIR", str(_TEST_ROOT / "public"))

import pytest
from docx import Document
from PIL import Image
from pypdf import PdfWriter

from filemerger.core.config import get_settings
from filemerger.core.errors import SinkError
from filemerger.services.events import NotificationLog
from filemerger.services.merge_service import MergeOrchestrator
from filemerger.services.text_layout import PageLayout
from filemerger.storage.registry import register_candidate


class MemorySink:
    """Download sink that keeps deliveries in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.deliveries: List[tuple] = []

    def deliver(self, data: bytes, filename: str) -> str:
        if self.fail:
            raise SinkError("disk full")
        self.deliveries.append((data, filename))
        return f"/downloads/{filename}"


def pdf_bytes(pages: int = 1, widths: Optional[List[int]] = None) -> bytes:
    writer = PdfWriter()
    for index in range(pages):
        width = widths[index] if widths else 200
        writer.add_blank_page(width=width, height=300)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    image = Image.new(mode, (width, height))
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def docx_bytes(paragraphs: List[str]) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def eml_text(subject: str, body: str, extra_headers: str = "") -> str:
    return (
        "From: sender@example.com\n"
        "To: receiver@example.com\n"
        f"Subject: {subject}\n"
        "Date: Mon, 6 May 2024 10:00:00 +0000\n"
        f"{extra_headers}"
        "\n"
        f"{body}\n"
    )


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def layout(settings):
    return PageLayout.from_settings(settings)


@pytest.fixture
def make_candidate(tmp_path: Path):
    def _make(name: str, content: bytes | str = b"data", mime_hint: str = "", relative_path: str = ""):
        path = tmp_path / f"{len(list(tmp_path.iterdir()))}_{name.replace('/', '_')}"
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return register_candidate(path, relative_path or name, mime_hint=mime_hint)

    return _make


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def notifications():
    return NotificationLog()


@pytest.fixture
def orchestrator(sink, notifications, settings):
    return MergeOrchestrator(sink, notifications, settings, clock=lambda: 1_700_000_000.123)
