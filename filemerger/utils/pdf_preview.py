import base64
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF


def render_page_preview(
    source: Union[Path, bytes],
    page_number: int = 1,
    zoom: float = 0.5,
    background: Optional[tuple[int, int, int]] = (255, 255, 255),
) -> str:
    """
    Render one page of a PDF as a base64 PNG data URL.

    Args:
        source: path to a PDF file, or the PDF bytes themselves.
        page_number: 1-based page number.
        zoom: scale factor applied to the page.
        background: RGB fill used for transparent pages.
    """
    if page_number < 1:
        raise ValueError("page_number must be >= 1")

    if isinstance(source, (bytes, bytearray)):
        document = fitz.open(stream=bytes(source), filetype="pdf")
    else:
        document = fitz.open(source)

    with document:
        if page_number > document.page_count:
            raise ValueError("page_number exceeds document pages")

        page = document.load_page(page_number - 1)
        matrix = fitz.Matrix(zoom, zoom)
        pixmap = page.get_pixmap(matrix=matrix, alpha=False)

        if background and pixmap.alpha:  # pragma: no cover - transparent pages only
            pixmap = fitz.Pixmap(fitz.csRGB, pixmap)

        image_bytes = pixmap.tobytes("png")

    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:image/png;base64,{encoded}"
