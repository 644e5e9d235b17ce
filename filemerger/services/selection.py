"""Turn uploads and dropped directories into validated candidate files.

Every entry is read concurrently and the batch is only returned once all of
the outstanding reads have settled.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from fastapi import UploadFile

from filemerger.core.logging import configure_logging
from filemerger.storage.local import LocalStorage
from filemerger.storage.registry import CandidateFile, register_candidate
from filemerger.utils.file_utils import is_acceptable

logger = configure_logging()


def split_acceptable(files: Iterable[CandidateFile]) -> Tuple[List[CandidateFile], List[CandidateFile]]:
    accepted: List[CandidateFile] = []
    rejected: List[CandidateFile] = []
    for file in files:
        (accepted if is_acceptable(file) else rejected).append(file)
    return accepted, rejected


async def store_uploads(
    uploads: Sequence[UploadFile],
    storage: LocalStorage,
    directory: Path,
) -> Tuple[List[CandidateFile], List[CandidateFile]]:
    """Save uploads side by side and describe them, keeping the upload order.

    Rejected entries (hidden files, empty placeholders) are removed from disk
    straight away.
    """

    async def _store(upload: UploadFile) -> CandidateFile:
        path = await asyncio.to_thread(storage.save_upload, upload, directory=directory)
        return register_candidate(path, upload.filename or path.name, mime_hint=upload.content_type or None)

    candidates = await asyncio.gather(*(_store(upload) for upload in uploads))
    accepted, rejected = split_acceptable(candidates)
    storage.cleanup(file.path for file in rejected)

    logger.info("Stored %s upload(s), rejected %s", len(accepted), len(rejected))
    return accepted, rejected


def _walk(root: Path) -> List[Path]:
    found: List[Path] = []
    for current, dirnames, filenames in os.walk(root):
        # Hidden and system folders are never part of a drop.
        dirnames[:] = sorted(d for d in dirnames if not d.startswith((".", "~")))
        for filename in sorted(filenames):
            found.append(Path(current) / filename)
    return found


def _describe(root: Path, path: Path) -> CandidateFile:
    relative = path.relative_to(root).as_posix()
    return register_candidate(path, f"{root.name}/{relative}")


async def expand_directory(root: Path) -> Tuple[List[CandidateFile], List[CandidateFile]]:
    """Recursively collect the files below ``root``, sorted by relative path."""
    root = root.resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")

    paths = await asyncio.to_thread(_walk, root)
    candidates = await asyncio.gather(*(asyncio.to_thread(_describe, root, path) for path in paths))
    candidates = sorted(candidates, key=lambda file: file.relative_path)

    accepted, rejected = split_acceptable(candidates)
    logger.info("Expanded %s: %s file(s) accepted, %s rejected", root.name, len(accepted), len(rejected))
    return accepted, rejected
