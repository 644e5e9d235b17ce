"""Per-format converters that turn one selected file into pages of the merged PDF.

Every converter honours the same contract: ``convert`` never raises. A file
either gets its own pages, a metadata info page when extraction is expected
to fail (unsupported types, unreadable Word or email files), or an error
page describing what went wrong.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from datetime import timezone
from email import policy
from email.header import decode_header, make_header
from email.parser import Parser
from enum import Enum
from io import BytesIO
from typing import Dict, List, Optional, Tuple

import extract_msg
from bs4 import BeautifulSoup
from docx import Document as DocxDocument
from docx.table import Table
from PIL import Image
from pypdf import PdfReader
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from filemerger.core.config import Settings
from filemerger.core.errors import ConversionError, FallbackableError
from filemerger.core.logging import configure_logging
from filemerger.services.dispatcher import ConverterKind
from filemerger.services.output_document import OutputDocument
from filemerger.services.text_layout import PageLayout, PageWriter, fit_image_rect
from filemerger.storage.registry import CandidateFile
from filemerger.utils.file_utils import format_file_size

logger = configure_logging()

UNSUPPORTED_NOTE = "Content extraction is not supported for this file type."


class OutcomeKind(str, Enum):
    pages_appended = "pages_appended"
    fallback_info_page = "fallback_info_page"
    error_page = "error_page"


@dataclass(frozen=True)
class ConversionOutcome:
    """What happened to one file during a merge run."""

    file_name: str
    kind: OutcomeKind
    page_count: int = 1
    reason: Optional[str] = None

    @classmethod
    def pages_appended(cls, file_name: str, page_count: int) -> "ConversionOutcome":
        return cls(file_name, OutcomeKind.pages_appended, page_count)

    @classmethod
    def fallback_info_page(cls, file_name: str, reason: Optional[str] = None) -> "ConversionOutcome":
        return cls(file_name, OutcomeKind.fallback_info_page, 1, reason)

    @classmethod
    def error_page(cls, file_name: str, reason: str, page_count: int = 1) -> "ConversionOutcome":
        return cls(file_name, OutcomeKind.error_page, page_count, reason)

    def to_dict(self) -> dict:
        return {
            "file": self.file_name,
            "outcome": self.kind.value,
            "page_count": self.page_count,
            "reason": self.reason,
        }


# ── Shared pages ──────────────────────────────────────────────


def _timestamp(file: CandidateFile) -> str:
    moment = file.last_modified
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
        return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def render_info_page(file: CandidateFile, layout: PageLayout, note: str = UNSUPPORTED_NOTE) -> bytes:
    writer = PageWriter(layout, paginate=False)
    writer.title(f"File: {file.name}")
    writer.field("Type", file.mime_hint or "Unknown")
    writer.field("Size", format_file_size(file.byte_size))
    writer.field("Last modified", _timestamp(file))
    if file.relative_path != file.name:
        writer.field("Location", file.relative_path)
    writer.gap()
    for text in writer.wrap(note):
        writer.note(text)
    return writer.finish()


def render_error_page(file: CandidateFile, reason: str, layout: PageLayout) -> bytes:
    writer = PageWriter(layout, paginate=False)
    writer.title(f"Error processing file: {file.name}")
    for text in writer.wrap(f"Reason: {reason}"):
        writer.line(text)
    writer.field("Size", format_file_size(file.byte_size))
    writer.gap()
    writer.note("The other files in this batch were merged normally.")
    return writer.finish()


# ── Converter base ────────────────────────────────────────────


class PageConverter:
    """Base converter: runs ``render`` and recovers from its failures locally."""

    kind: ConverterKind = ConverterKind.generic

    def __init__(self, layout: PageLayout, settings: Settings) -> None:
        self.layout = layout
        self.settings = settings

    def convert(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        try:
            return self.render(file, data, document)
        except FallbackableError as exc:
            logger.warning("Falling back to an info page for %s: %s", file.name, exc)
            document.append_pdf_bytes(
                render_info_page(file, self.layout, note=f"The content of this file could not be extracted ({exc}).")
            )
            return ConversionOutcome.fallback_info_page(file.name, str(exc))
        except Exception as exc:
            logger.exception("Conversion failed for %s", file.name)
            reason = str(exc) or exc.__class__.__name__
            document.append_pdf_bytes(render_error_page(file, reason, self.layout))
            return ConversionOutcome.error_page(file.name, reason)

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        raise NotImplementedError


class GenericConverter(PageConverter):
    kind = ConverterKind.generic

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        document.append_pdf_bytes(render_info_page(file, self.layout))
        return ConversionOutcome.fallback_info_page(file.name)


# ── PDF ───────────────────────────────────────────────────────


class PdfConverter(PageConverter):
    """Copies every page of a PDF unchanged, in its original order."""

    kind = ConverterKind.pdf

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        reader = PdfReader(BytesIO(data))
        if reader.is_encrypted and not reader.decrypt(""):
            raise ConversionError("The PDF is password protected.")
        if len(reader.pages) == 0:
            raise ConversionError("The PDF has no pages.")
        count = document.append_reader(reader)
        return ConversionOutcome.pages_appended(file.name, count)


# ── Images ────────────────────────────────────────────────────


class ImageConverter(PageConverter):
    """Places an image on one page, centred and scaled to fit inside the margins."""

    kind = ConverterKind.image

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
        rect = fit_image_rect(width, height, self.layout.width, self.layout.height, self.layout.margin)

        try:
            page = self._draw(ImageReader(BytesIO(data)), rect)
        except Exception as exc:
            logger.warning("Embedding %s failed (%s); re-encoding as PNG", file.name, exc)
            page = self._draw(ImageReader(self._reencode(data)), rect)

        document.append_pdf_bytes(page)
        return ConversionOutcome.pages_appended(file.name, 1)

    def _draw(self, image: ImageReader, rect: Tuple[float, float, float, float]) -> bytes:
        x, y, width, height = rect
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=self.layout.page_size, invariant=1)
        c.drawImage(image, x, y, width=width, height=height, mask="auto")
        c.showPage()
        c.save()
        return buffer.getvalue()

    @staticmethod
    def _reencode(data: bytes) -> BytesIO:
        """Decode with Pillow and write the pixels back out as a lossless PNG."""
        with Image.open(BytesIO(data)) as image:
            image.load()
            if image.mode in ("RGBA", "LA", "P"):
                image = image.convert("RGBA")
                background = Image.new("RGB", image.size, (255, 255, 255))
                background.paste(image, mask=image.split()[-1])
                image = background
            elif image.mode != "RGB":
                image = image.convert("RGB")
            output = BytesIO()
            image.save(output, format="PNG")
        output.seek(0)
        return output


# ── Plain text ────────────────────────────────────────────────


def decode_text(data: bytes) -> str:
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


class TextConverter(PageConverter):
    """One page per text file; anything past the bottom margin is cut off with a note."""

    kind = ConverterKind.text

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        writer = PageWriter(self.layout, paginate=False)
        writer.title(f"File: {file.name}")

        lines = writer.wrap(decode_text(data).rstrip())
        capacity = writer.lines_left()
        if len(lines) > capacity:
            shown = max(capacity - 1, 0)
            writer.lines(lines[:shown])
            writer.note(f"[Content truncated: {len(lines) - shown} more lines not shown]")
        else:
            writer.lines(lines)

        document.append_pdf_bytes(writer.finish())
        return ConversionOutcome.pages_appended(file.name, 1)


# ── Word documents ────────────────────────────────────────────


def _table_rows(table: Table) -> List[str]:
    rows = []
    for row in table.rows:
        cells: List[str] = []
        for cell in row.cells:
            text = cell.text.strip()
            # Merged cells are reported once per grid column.
            if cells and cells[-1] == text:
                continue
            cells.append(text)
        rows.append(" | ".join(cells))
    return rows


def extract_docx_paragraphs(data: bytes) -> List[str]:
    """Return the document's block-level content as paragraphs, in reading order."""
    document = DocxDocument(BytesIO(data))
    paragraphs: List[str] = []
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            paragraphs.extend(_table_rows(block))
        else:
            paragraphs.append(block.text)

    # Collapse runs of empty paragraphs into a single break.
    collapsed: List[str] = []
    for text in paragraphs:
        text = text.strip()
        if not text and (not collapsed or not collapsed[-1]):
            continue
        collapsed.append(text)
    while collapsed and not collapsed[-1]:
        collapsed.pop()
    return collapsed


class WordConverter(PageConverter):
    """Extracts the text of a Word document and lays it out over as many pages as needed."""

    kind = ConverterKind.word

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        if file.extension == "doc":
            raise FallbackableError("legacy binary .doc files are not supported")
        try:
            paragraphs = extract_docx_paragraphs(data)
        except Exception as exc:
            raise FallbackableError(f"document text extraction failed: {exc}") from exc

        writer = PageWriter(self.layout, paginate=True)
        writer.title(f"File: {file.name}")
        if not paragraphs:
            writer.note("(The document contains no text.)")
        for paragraph in paragraphs:
            writer.lines(writer.wrap(paragraph))

        document.append_pdf_bytes(writer.finish())
        return ConversionOutcome.pages_appended(file.name, writer.page_count)


# ── Email ─────────────────────────────────────────────────────

_QP_ESCAPE = re.compile(r"=(?:[0-9A-Fa-f]{2}|\n)")
_HORIZONTAL_SPACE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")

EMAIL_HEADERS = (("From", "from"), ("To", "to"), ("Subject", "subject"), ("Date", "date"))


@dataclass
class ParsedEmail:
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""


def parse_header_block(block: str) -> Dict[str, str]:
    """Parse ``Field: value`` lines, joining folded continuation lines.

    Header names are lower-cased; the first occurrence of a repeated header
    wins.
    """
    pairs: List[List[str]] = []
    for line in block.split("\n"):
        if not line.strip():
            continue
        if line[0] in " \t":
            if not pairs:
                raise ValueError("continuation line before the first header")
            pairs[-1][1] = f"{pairs[-1][1]} {line.strip()}"
            continue
        name, colon, value = line.partition(":")
        name = name.strip()
        if not colon or not name or " " in name:
            raise ValueError(f"malformed header line: {line[:60]!r}")
        pairs.append([name.lower(), value.strip()])

    if not pairs:
        raise ValueError("message has no headers")

    headers: Dict[str, str] = {}
    for name, value in pairs:
        headers.setdefault(name, value)
    return headers


def decode_header_value(value: str) -> str:
    """Decode RFC 2047 encoded words (``=?utf-8?q?...?=``) in a header value."""
    try:
        return str(make_header(decode_header(value)))
    except (LookupError, ValueError):
        return value


def strip_quoted_printable(text: str) -> str:
    """Drop ``=XX`` escapes and soft line breaks instead of decoding them."""
    return _QP_ESCAPE.sub("", text)


def collapse_whitespace(text: str) -> str:
    lines = [_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "head"]):
        element.decompose()
    return soup.get_text("\n")


def _multipart_body(raw: str) -> str:
    message = Parser(policy=policy.default).parsestr(raw)
    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    content = part.get_content()
    if part.get_content_subtype() == "html":
        content = html_to_text(content)
    return content


def parse_eml(data: bytes) -> ParsedEmail:
    raw = decode_text(data).replace("\r\n", "\n").replace("\r", "\n")
    if raw.startswith("From "):
        # mbox separator line
        raw = raw.split("\n", 1)[1] if "\n" in raw else ""

    header_block, _, body = raw.partition("\n\n")
    headers = parse_header_block(header_block)

    content_type = headers.get("content-type", "text/plain").lower()
    encoding = headers.get("content-transfer-encoding", "").lower()

    if content_type.startswith("multipart/"):
        body = _multipart_body(raw)
    elif encoding == "base64":
        try:
            body = decode_text(base64.b64decode(body))
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"invalid base64 body: {exc}") from exc
    else:
        body = strip_quoted_printable(body)

    if content_type.startswith("text/html"):
        body = html_to_text(body)

    return ParsedEmail(headers=headers, body=collapse_whitespace(body))


def parse_msg(file: CandidateFile) -> ParsedEmail:
    message = extract_msg.Message(str(file.path))
    try:
        body = message.body or ""
        if not body.strip() and getattr(message, "htmlBody", None):
            html = message.htmlBody
            body = html_to_text(html.decode("utf-8", "replace") if isinstance(html, bytes) else html)
        headers = {
            "from": message.sender or "",
            "to": message.to or "",
            "subject": message.subject or "",
            "date": str(message.date) if message.date else "",
        }
        return ParsedEmail(headers=headers, body=collapse_whitespace(body))
    finally:
        message.close()


class EmailConverter(PageConverter):
    """Renders the main headers and the body text of an email message."""

    kind = ConverterKind.email

    def render(self, file: CandidateFile, data: bytes, document: OutputDocument) -> ConversionOutcome:
        try:
            message = parse_msg(file) if file.extension == "msg" else parse_eml(data)
        except Exception as exc:
            raise FallbackableError(f"email could not be parsed: {exc}") from exc

        writer = PageWriter(self.layout, paginate=True)
        writer.title(f"Email: {file.name}")
        for label, key in EMAIL_HEADERS:
            value = decode_header_value(message.headers.get(key, "")) or ("(No Subject)" if key == "subject" else "")
            if not value:
                continue
            for text in writer.wrap(f"{label}: {value}"):
                writer.line(text, font=self.layout.title_font)
        writer.gap()

        lines = writer.wrap(message.body) if message.body else []
        limit = self.settings.email_max_lines
        writer.lines(lines[:limit])
        if len(lines) > limit:
            writer.note(f"[Message truncated: {len(lines) - limit} more lines not shown]")

        document.append_pdf_bytes(writer.finish())
        return ConversionOutcome.pages_appended(file.name, writer.page_count)


CONVERTER_CLASSES = (
    PdfConverter,
    ImageConverter,
    TextConverter,
    WordConverter,
    EmailConverter,
    GenericConverter,
)


def build_converters(layout: PageLayout, settings: Settings) -> Dict[ConverterKind, PageConverter]:
    return {cls.kind: cls(layout, settings) for cls in CONVERTER_CLASSES}
