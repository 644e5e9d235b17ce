from io import BytesIO

import pytest
from pypdf import PdfReader

from conftest import docx_bytes, eml_text, image_bytes, pdf_bytes
from filemerger.core.errors import FallbackableError, FinalizationError
from filemerger.services.converters import (
    EmailConverter,
    GenericConverter,
    ImageConverter,
    OutcomeKind,
    PdfConverter,
    TextConverter,
    WordConverter,
    decode_header_value,
    extract_docx_paragraphs,
    parse_eml,
    parse_header_block,
    strip_quoted_printable,
)
from filemerger.services.output_document import OutputDocument


def _text(document: OutputDocument) -> str:
    reader = PdfReader(BytesIO(document.finalize()))
    return "\n".join(page.extract_text() for page in reader.pages)


def _convert(converter_cls, layout, settings, file):
    document = OutputDocument()
    outcome = converter_cls(layout, settings).convert(file, file.read_bytes(), document)
    return outcome, document


# ── PDF ───────────────────────────────────────────────────────


def test_pdf_pages_are_copied_in_order(layout, settings, make_candidate):
    file = make_candidate("report.pdf", pdf_bytes(2, widths=[200, 400]))
    outcome, document = _convert(PdfConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    assert outcome.page_count == 2
    reader = PdfReader(BytesIO(document.finalize()))
    assert [float(page.mediabox.width) for page in reader.pages] == [200, 400]


def test_broken_pdf_becomes_an_error_page(layout, settings, make_candidate):
    file = make_candidate("broken.pdf", b"this is not a pdf")
    outcome, document = _convert(PdfConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.error_page
    assert outcome.reason
    assert document.page_count == 1
    assert "Error processing file: broken.pdf" in _text(document)


# ── Images ────────────────────────────────────────────────────


def test_large_photo_fills_one_page(layout, settings, make_candidate):
    file = make_candidate("photo.jpg", image_bytes(4000, 3000, fmt="JPEG"))
    outcome, document = _convert(ImageConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    assert outcome.page_count == 1
    page = PdfReader(BytesIO(document.finalize())).pages[0]
    assert float(page.mediabox.width) == pytest.approx(layout.width)


def test_transparent_png_is_embedded(layout, settings, make_candidate):
    file = make_candidate("logo.png", image_bytes(40, 40, mode="RGBA"))
    outcome, _ = _convert(ImageConverter, layout, settings, file)
    assert outcome.kind is OutcomeKind.pages_appended


def test_failed_embed_is_retried_with_the_same_placement(layout, settings, make_candidate, monkeypatch):
    file = make_candidate("photo.png", image_bytes(300, 100))
    original = ImageConverter._draw
    rects = []

    def flaky_draw(self, image, rect):
        rects.append(rect)
        if len(rects) == 1:
            raise OSError("unsupported encoding")
        return original(self, image, rect)

    monkeypatch.setattr(ImageConverter, "_draw", flaky_draw)
    outcome, document = _convert(ImageConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    assert len(rects) == 2
    assert rects[0] == rects[1]
    assert document.page_count == 1


def test_unreadable_image_becomes_an_error_page(layout, settings, make_candidate):
    file = make_candidate("photo.jpg", b"\xff\xd8 not really a jpeg")
    outcome, document = _convert(ImageConverter, layout, settings, file)
    assert outcome.kind is OutcomeKind.error_page
    assert document.page_count == 1


# ── Text ──────────────────────────────────────────────────────


def test_short_text_fits_on_one_page(layout, settings, make_candidate):
    file = make_candidate("notes.txt", " ".join(["word"] * 500))
    outcome, document = _convert(TextConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    assert outcome.page_count == 1
    text = _text(document)
    assert "File: notes.txt" in text
    assert "Content truncated" not in text


def test_long_text_is_truncated_with_a_note(layout, settings, make_candidate):
    file = make_candidate("long.txt", " ".join(["word"] * 5000))
    outcome, document = _convert(TextConverter, layout, settings, file)

    assert outcome.page_count == 1
    assert document.page_count == 1
    assert "[Content truncated:" in _text(document)


def test_text_in_legacy_encoding_is_decoded(layout, settings, make_candidate):
    file = make_candidate("latin.txt", "caf\xe9 cr\xe8me".encode("cp1252"))
    _, document = _convert(TextConverter, layout, settings, file)
    assert "café crème" in _text(document)


# ── Word ──────────────────────────────────────────────────────


def test_docx_text_is_rendered(layout, settings, make_candidate):
    file = make_candidate("letter.docx", docx_bytes(["Dear reader,", "", "", "Kind regards"]))
    outcome, document = _convert(WordConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    text = _text(document)
    assert "Dear reader," in text
    assert "Kind regards" in text


def test_long_docx_spans_several_pages(layout, settings, make_candidate):
    file = make_candidate("book.docx", docx_bytes([f"Paragraph {i}" for i in range(200)]))
    outcome, document = _convert(WordConverter, layout, settings, file)

    assert outcome.page_count > 1
    assert outcome.page_count == document.page_count


def test_empty_paragraph_runs_collapse():
    assert extract_docx_paragraphs(docx_bytes(["one", "", "", "two", ""])) == ["one", "", "two"]


def test_corrupt_docx_falls_back_to_an_info_page(layout, settings, make_candidate):
    file = make_candidate("corrupt.docx", b"PK\x03\x04 truncated archive")
    outcome, document = _convert(WordConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.fallback_info_page
    assert outcome.page_count == 1
    text = _text(document)
    assert "File: corrupt.docx" in text
    assert "Size:" in text


def test_legacy_doc_falls_back_to_an_info_page(layout, settings, make_candidate):
    file = make_candidate("old.doc", b"\xd0\xcf\x11\xe0 binary")
    outcome, _ = _convert(WordConverter, layout, settings, file)
    assert outcome.kind is OutcomeKind.fallback_info_page


def test_word_render_raises_fallbackable_for_legacy_doc(layout, settings, make_candidate):
    file = make_candidate("old.doc", b"data")
    with pytest.raises(FallbackableError):
        WordConverter(layout, settings).render(file, b"data", OutputDocument())


# ── Email ─────────────────────────────────────────────────────


def test_folded_headers_are_joined():
    headers = parse_header_block("Subject: Quarterly\n  report\nFrom: a@example.com\nSubject: second")
    assert headers["subject"] == "Quarterly report"
    assert headers["from"] == "a@example.com"


def test_malformed_header_block_is_rejected():
    with pytest.raises(ValueError):
        parse_header_block("this is not a header")


def test_quoted_printable_escapes_are_dropped():
    assert strip_quoted_printable("Hello=20there=\nfriend =E2=9C=93") == "Hellotherefriend "


def test_encoded_words_are_decoded():
    assert decode_header_value("=?utf-8?q?Caf=C3=A9?=") == "Café"


def test_eml_headers_and_body(layout, settings, make_candidate):
    file = make_candidate("hello.eml", eml_text("Greetings", "Hi there,\n\nSee you soon."))
    outcome, document = _convert(EmailConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.pages_appended
    text = _text(document)
    assert "Email: hello.eml" in text
    assert "Subject: Greetings" in text
    assert "From: sender@example.com" in text
    assert "See you soon." in text


def test_missing_subject_is_labelled(layout, settings, make_candidate):
    raw = "From: a@example.com\nTo: b@example.com\n\nbody\n"
    _, document = _convert(EmailConverter, layout, settings, make_candidate("nosubject.eml", raw))
    assert "Subject: (No Subject)" in _text(document)


def test_email_body_is_capped(layout, settings, make_candidate):
    body = "\n".join(f"Line {i}" for i in range(settings.email_max_lines + 40))
    _, document = _convert(EmailConverter, layout, settings, make_candidate("long.eml", eml_text("Long", body)))
    text = _text(document)
    assert "[Message truncated: 40 more lines not shown]" in text
    assert f"Line {settings.email_max_lines - 1}" in text
    assert f"Line {settings.email_max_lines + 1}" not in text


def test_multipart_email_prefers_plain_text():
    raw = (
        "From: a@example.com\n"
        "Subject: Mixed\n"
        "MIME-Version: 1.0\n"
        'Content-Type: multipart/alternative; boundary="XYZ"\n'
        "\n"
        "--XYZ\n"
        "Content-Type: text/plain; charset=utf-8\n"
        "\n"
        "Plain body\n"
        "--XYZ\n"
        "Content-Type: text/html; charset=utf-8\n"
        "\n"
        "<p>Html body</p>\n"
        "--XYZ--\n"
    )
    message = parse_eml(raw.encode())
    assert message.headers["subject"] == "Mixed"
    assert message.body == "Plain body"


def test_html_email_is_flattened():
    raw = "From: a@example.com\nContent-Type: text/html\n\n<html><body><p>Hello</p><p>World</p></body></html>\n"
    assert parse_eml(raw.encode()).body == "Hello\nWorld"


def test_base64_body_is_decoded():
    raw = "From: a@example.com\nContent-Transfer-Encoding: base64\n\nSGVsbG8gd29ybGQ=\n"
    assert parse_eml(raw.encode()).body == "Hello world"


def test_unparseable_email_falls_back(layout, settings, make_candidate):
    file = make_candidate("junk.eml", "no headers here at all")
    outcome, document = _convert(EmailConverter, layout, settings, file)
    assert outcome.kind is OutcomeKind.fallback_info_page
    assert document.page_count == 1


def test_unreadable_msg_falls_back(layout, settings, make_candidate):
    file = make_candidate("outlook.msg", b"not an OLE container")
    outcome, _ = _convert(EmailConverter, layout, settings, file)
    assert outcome.kind is OutcomeKind.fallback_info_page


# ── Everything else ───────────────────────────────────────────


def test_unknown_type_gets_an_info_page(layout, settings, make_candidate):
    file = make_candidate("data.csv", "a,b\n1,2\n", mime_hint="text/csv")
    outcome, document = _convert(GenericConverter, layout, settings, file)

    assert outcome.kind is OutcomeKind.fallback_info_page
    text = _text(document)
    assert "File: data.csv" in text
    assert "Type: text/csv" in text
    assert "not supported" in text


def test_output_document_finalizes_once():
    document = OutputDocument()
    document.append_pdf_bytes(pdf_bytes(1))
    first = document.finalize()
    assert document.finalize() is first
    assert document.finalized
    with pytest.raises(FinalizationError):
        document.append_pdf_bytes(pdf_bytes(1))


def test_empty_output_document_cannot_be_finalized():
    with pytest.raises(FinalizationError):
        OutputDocument().finalize()
