from __future__ import annotations

from io import BytesIO
from typing import Optional

from pypdf import PdfReader, PdfWriter

from filemerger.core.errors import FinalizationError


class OutputDocument:
    """The merged PDF being built by one merge run.

    Pages are only ever appended. ``finalize`` serializes the document once;
    later calls return the same bytes and further appends are refused.
    """

    def __init__(self) -> None:
        self._writer = PdfWriter()
        self._result: Optional[bytes] = None

    @property
    def page_count(self) -> int:
        return len(self._writer.pages)

    @property
    def finalized(self) -> bool:
        return self._result is not None

    # ------------------------------------------------------------------
    def append_reader(self, reader: PdfReader) -> int:
        """Copy every page of ``reader`` in order; returns the number copied."""
        self._ensure_open()
        pages = list(reader.pages)
        for page in pages:
            self._writer.add_page(page)
        return len(pages)

    def append_pdf_bytes(self, data: bytes) -> int:
        """Append the pages of an in-memory PDF (e.g. one rendered by reportlab)."""
        return self.append_reader(PdfReader(BytesIO(data)))

    def finalize(self) -> bytes:
        if self._result is None:
            if self.page_count == 0:
                raise FinalizationError("The merged document has no pages.")
            buffer = BytesIO()
            try:
                self._writer.write(buffer)
            except Exception as exc:
                raise FinalizationError(f"Failed to write merged PDF: {exc}") from exc
            self._result = buffer.getvalue()
        return self._result

    def _ensure_open(self) -> None:
        if self._result is not None:
            raise FinalizationError("The merged document is already finalized.")
