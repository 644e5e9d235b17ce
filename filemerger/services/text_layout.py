from __future__ import annotations

import re
from dataclasses import dataclass
from io import BytesIO
from typing import List, Tuple

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import A4, letter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from filemerger.core.config import Settings

PAGE_SIZES = {"A4": A4, "letter": letter}

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

TITLE_COLOR = Color(0.12, 0.16, 0.23)
BODY_COLOR = Color(0.2, 0.2, 0.2)
NOTE_COLOR = Color(0.45, 0.45, 0.45)


@dataclass(frozen=True)
class PageLayout:
    width: float
    height: float
    margin: float = 50.0
    title_font: str = "Helvetica-Bold"
    title_size: int = 16
    body_font: str = "Helvetica"
    body_size: int = 10
    line_height: float = 14.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PageLayout":
        width, height = PAGE_SIZES[settings.page_size]
        return cls(
            width=width,
            height=height,
            margin=settings.page_margin,
            title_size=settings.title_font_size,
            body_size=settings.body_font_size,
            line_height=settings.line_height,
        )

    @property
    def page_size(self) -> Tuple[float, float]:
        return self.width, self.height

    @property
    def available_width(self) -> float:
        return self.width - 2 * self.margin


def printable(text: str) -> str:
    """Normalise text to what the standard PDF fonts can encode."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", "    ")
    text = _CONTROL_CHARS.sub("", text)
    return text.encode("cp1252", "replace").decode("cp1252")


def _split_word(word: str, max_width: float, font_name: str, font_size: float) -> List[str]:
    pieces: List[str] = []
    current = ""
    for char in word:
        candidate = current + char
        if current and stringWidth(candidate, font_name, font_size) >= max_width:
            pieces.append(current)
            current = char
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def wrap_text(text: str, max_width: float, font_name: str, font_size: float) -> List[str]:
    """Greedily wrap text into lines narrower than ``max_width``.

    Widths come from the font's glyph metrics. Every source line break starts
    a new paragraph and blank source lines are kept as empty lines. Words wider
    than a whole line are split across lines.
    """
    lines: List[str] = []
    for paragraph in printable(text).split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue

        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if stringWidth(candidate, font_name, font_size) < max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            if stringWidth(word, font_name, font_size) < max_width:
                current = word
            else:
                *full, current = _split_word(word, max_width, font_name, font_size)
                lines.extend(full)
        if current:
            lines.append(current)
    return lines


def fit_image_rect(
    image_width: float,
    image_height: float,
    page_width: float,
    page_height: float,
    margin: float,
) -> Tuple[float, float, float, float]:
    """Return ``(x, y, width, height)`` placing an image centred inside the margins.

    Wider-than-page images are constrained by width, the rest by height, so
    the aspect ratio is kept and the image never leaves the printable area.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError("image has no pixels")

    max_width = page_width - 2 * margin
    max_height = page_height - 2 * margin
    image_ratio = image_width / image_height
    page_ratio = max_width / max_height

    if image_ratio > page_ratio:
        width = max_width
        height = max_width / image_ratio
    else:
        height = max_height
        width = max_height * image_ratio

    x = (page_width - width) / 2
    y = (page_height - height) / 2
    return x, y, width, height


class PageWriter:
    """Draw titled, line-based pages into an in-memory PDF.

    With ``paginate`` a new page starts whenever the next line would cross the
    bottom margin; without it, writing stops once the page is full.
    """

    def __init__(self, layout: PageLayout, *, paginate: bool = True) -> None:
        self.layout = layout
        self.paginate = paginate
        self._buffer = BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pagesize=layout.page_size, invariant=1)
        self._y = layout.height - layout.margin
        self.page_count = 1
        self._finished = False

    # ------------------------------------------------------------------
    def lines_left(self) -> int:
        """Body lines that still fit on the current page."""
        room = self._y - self.layout.margin - self.layout.body_size
        if room < 0:
            return 0
        return int(room // self.layout.line_height) + 1

    def title(self, text: str, size: int | None = None) -> None:
        size = size or self.layout.title_size
        self._canvas.setFillColor(TITLE_COLOR)
        self._canvas.setFont(self.layout.title_font, size)
        self._canvas.drawString(self.layout.margin, self._y - size, self._fit(printable(text), size))
        self._y -= size + self.layout.line_height

    def field(self, label: str, value: str) -> bool:
        return self.line(f"{label}: {value}", font=self.layout.title_font)

    def line(self, text: str, *, font: str | None = None, color: Color = BODY_COLOR) -> bool:
        """Draw one line; returns False when it did not fit on an unpaginated page."""
        if self.lines_left() == 0:
            if not self.paginate:
                return False
            self.new_page()
        font = font or self.layout.body_font
        self._canvas.setFillColor(color)
        self._canvas.setFont(font, self.layout.body_size)
        self._canvas.drawString(self.layout.margin, self._y - self.layout.body_size, printable(text))
        self._y -= self.layout.line_height
        return True

    def lines(self, texts: List[str]) -> int:
        drawn = 0
        for text in texts:
            if not self.line(text):
                break
            drawn += 1
        return drawn

    def note(self, text: str) -> bool:
        return self.line(text, font="Helvetica-Oblique", color=NOTE_COLOR)

    def gap(self) -> None:
        self._y -= self.layout.line_height / 2

    def new_page(self) -> None:
        self._canvas.showPage()
        self.page_count += 1
        self._y = self.layout.height - self.layout.margin

    def wrap(self, text: str) -> List[str]:
        return wrap_text(text, self.layout.available_width, self.layout.body_font, self.layout.body_size)

    def finish(self) -> bytes:
        if not self._finished:
            self._canvas.showPage()
            self._canvas.save()
            self._finished = True
        return self._buffer.getvalue()

    # ------------------------------------------------------------------
    def _fit(self, text: str, size: int) -> str:
        """Shorten a title so it stays inside the margins."""
        limit = self.layout.available_width
        if stringWidth(text, self.layout.title_font, size) < limit:
            return text
        while text and stringWidth(text + "...", self.layout.title_font, size) >= limit:
            text = text[:-1]
        return text + "..."
