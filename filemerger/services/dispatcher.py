from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict

from filemerger.utils.file_utils import file_extension

if TYPE_CHECKING:
    from filemerger.storage.registry import CandidateFile


class ConverterKind(str, Enum):
    pdf = "pdf"
    image = "image"
    text = "text"
    word = "word"
    email = "email"
    generic = "generic"


EXTENSION_MAP: Dict[str, ConverterKind] = {
    "pdf": ConverterKind.pdf,
    "jpg": ConverterKind.image,
    "jpeg": ConverterKind.image,
    "png": ConverterKind.image,
    "gif": ConverterKind.image,
    "bmp": ConverterKind.image,
    "webp": ConverterKind.image,
    "tiff": ConverterKind.image,
    "tif": ConverterKind.image,
    "txt": ConverterKind.text,
    "doc": ConverterKind.word,
    "docx": ConverterKind.word,
    "eml": ConverterKind.email,
    "msg": ConverterKind.email,
}

_LABELS = {
    ConverterKind.pdf: "PDF document",
    ConverterKind.image: "Image",
    ConverterKind.text: "Plain text",
    ConverterKind.word: "Word document",
    ConverterKind.email: "Email message",
    ConverterKind.generic: "Other file",
}


def converter_for_name(name: str) -> ConverterKind:
    return EXTENSION_MAP.get(file_extension(name).lower(), ConverterKind.generic)


def select_converter(file: "CandidateFile") -> ConverterKind:
    """Pick the converter family for a file from its lower-cased extension."""
    return converter_for_name(file.name)


def kind_label(kind: ConverterKind) -> str:
    return _LABELS[kind]
