from pathlib import Path
from typing import List

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status

from filemerger.core.config import get_settings
from filemerger.core.logging import configure_logging
from filemerger.models import DirectoryImportRequest, DragGestureRequest, OrderingRequest, ReorderRequest
from filemerger.services.drag_reorder import Gesture
from filemerger.services.session import MergeSession
from filemerger.storage.local import LocalStorage
from filemerger.storage.registry import get_session, register_session, unregister_session

router = APIRouter(prefix="/sessions", tags=["Sessions"])

settings = get_settings()
logger = configure_logging()
storage = LocalStorage()


def _file_list(session: MergeSession) -> dict:
    return {
        "status": "ok",
        "session_id": session.session_id,
        "ordering_enabled": session.file_list.ordering_enabled,
        "files": session.file_list.snapshot(),
    }


@router.post("", summary="Start a new merge session")
async def create_session() -> dict:
    session = register_session(MergeSession(storage, settings))
    logger.info("Created session %s", session.session_id)
    return {"status": "ok", **session.to_dict()}


@router.get("/{session_id}", summary="Session state: files, ordering mode and the current run")
async def read_session(session_id: str) -> dict:
    return {"status": "ok", **get_session(session_id).to_dict()}


@router.delete("/{session_id}", summary="Close a session and delete its uploads")
async def close_session(session_id: str) -> dict:
    session = get_session(session_id)
    session.reset()
    unregister_session(session_id)
    return {"status": "ok"}


@router.post("/{session_id}/files", summary="Select files by upload (picker or drop)")
async def select_files(
    session_id: str,
    files: List[UploadFile] = File(...),
    append: bool = Query(False, description="Add to the current selection instead of replacing it."),
) -> dict:
    session = get_session(session_id)
    rejected = await session.select_uploads(files, append=append)

    response = _file_list(session)
    response["rejected"] = [file.relative_path for file in rejected]
    if not len(session.file_list):
        response["message"] = "No files selected. Please select files to process."
    return response


@router.post("/{session_id}/files/import", summary="Select every file below a server-side directory")
async def import_directory(session_id: str, payload: DirectoryImportRequest) -> dict:
    if settings.import_root is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Directory import is disabled on this server.",
        )

    root = settings.import_root.resolve()
    target = (root / payload.path).resolve()
    if target != root and root not in target.parents:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The directory is outside the import root.",
        )
    if not target.is_dir():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Directory not found: {payload.path}",
        )

    session = get_session(session_id)
    rejected = await session.import_directory(Path(target), append=payload.append)
    response = _file_list(session)
    response["rejected"] = [file.relative_path for file in rejected]
    return response


@router.get("/{session_id}/files", summary="Files in their current order")
async def list_files(session_id: str) -> dict:
    return _file_list(get_session(session_id))


@router.put("/{session_id}/ordering", summary="Turn ordering mode on or off")
async def set_ordering(session_id: str, payload: OrderingRequest) -> dict:
    session = get_session(session_id)
    session.set_ordering(payload.enabled)
    logger.info("Session %s ordering mode: %s", session_id, payload.enabled)
    return _file_list(session)


@router.post("/{session_id}/reorder", summary="Move a file to an insertion point or swap two files")
async def reorder(session_id: str, payload: ReorderRequest) -> dict:
    session = get_session(session_id)
    changed = session.reorder(
        payload.source_index,
        insertion_point=payload.insertion_point,
        target_index=payload.target_index,
    )
    response = _file_list(session)
    response["changed"] = changed
    return response


@router.post("/{session_id}/drag", summary="Feed one drag-and-drop gesture event")
async def drag(session_id: str, payload: DragGestureRequest) -> dict:
    session = get_session(session_id)
    effect = session.gesture(
        Gesture(
            type=payload.type,
            index=payload.index,
            insertion_point=payload.insertion_point,
            target_index=payload.target_index,
        )
    )
    response = _file_list(session)
    response["effect"] = effect.type.value
    response["dragging"] = session.drag.state.source_index
    response["highlighted"] = session.drag.state.highlighted
    return response


@router.get("/{session_id}/events", summary="State notifications after a sequence number")
async def events(session_id: str, since: int = Query(0, ge=0)) -> dict:
    session = get_session(session_id)
    return {
        "status": "ok",
        "events": [notification.to_dict() for notification in session.notifications.since(since)],
    }


@router.post("/{session_id}/reset", summary="Clear the selection and the last run")
async def reset(session_id: str) -> dict:
    session = get_session(session_id)
    session.reset()
    logger.info("Session %s reset", session_id)
    return {"status": "ok", **session.to_dict()}
