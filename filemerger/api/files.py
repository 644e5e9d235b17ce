from datetime import datetime, timezone

from fastapi import APIRouter

from filemerger.storage.local import LocalStorage
from filemerger.utils.file_utils import format_file_size

router = APIRouter(prefix="/files", tags=["Files"])
storage = LocalStorage()


@router.get("/", summary="Merged PDFs available for download, newest first")
async def list_files() -> dict:
    entries = []
    for path in storage.download_root.glob("*.pdf"):
        if not path.is_file():
            continue
        stat = path.stat()
        entries.append(
            (
                stat.st_mtime,
                {
                    "filename": path.name,
                    "download_url": f"/downloads/{path.name}",
                    "size_bytes": stat.st_size,
                    "size_label": format_file_size(stat.st_size),
                    "updated_at": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                },
            )
        )

    entries.sort(key=lambda entry: entry[0], reverse=True)
    return {"files": [card for _, card in entries]}
