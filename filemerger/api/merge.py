from fastapi import APIRouter

from filemerger.core.config import get_settings
from filemerger.core.logging import configure_logging
from filemerger.services.merge_service import MergeRun, RunStatus
from filemerger.storage.registry import get_session
from filemerger.utils.pdf_preview import render_page_preview

router = APIRouter(prefix="/sessions", tags=["PDF Merge"])

settings = get_settings()
logger = configure_logging()


def _result_card(run: MergeRun) -> dict | None:
    if run.status is not RunStatus.succeeded:
        return None

    card: dict = {
        "filename": run.result_filename,
        "page_count": run.page_count,
        "size_bytes": len(run.result_bytes or b""),
        "download_url": run.download_url,
    }
    if settings.render_previews and run.result_bytes:
        try:
            card["preview"] = render_page_preview(run.result_bytes, page_number=1)
        except Exception:
            logger.warning("Could not render a preview of %s", run.result_filename)
    return card


def _run_response(run: MergeRun) -> dict:
    if run.status is RunStatus.succeeded and run.delivery_error is None:
        message = "PDF created successfully."
    elif run.status is RunStatus.succeeded:
        message = f"Failed to download PDF: {run.delivery_error}"
    else:
        message = run.error_message or run.message

    return {
        "status": run.status.value,
        "message": message,
        "run": run.to_dict(),
        "result": _result_card(run),
    }


@router.post("/{session_id}/merge", summary="Merge the selected files into one PDF")
async def start_merge(session_id: str) -> dict:
    session = get_session(session_id)
    logger.info("Session %s: merging %s file(s)", session_id, len(session.file_list))
    run = await session.merge()
    return _run_response(run)


@router.post("/{session_id}/retry", summary="Run the merge again from the current selection")
async def retry_merge(session_id: str) -> dict:
    session = get_session(session_id)
    run = await session.retry()
    return _run_response(run)


@router.post("/{session_id}/redeliver", summary="Publish the last merged PDF for download again")
async def redeliver(session_id: str) -> dict:
    session = get_session(session_id)
    run = await session.redeliver()
    return _run_response(run)


@router.get("/{session_id}/run", summary="State of the current merge run")
async def run_state(session_id: str) -> dict:
    return _run_response(get_session(session_id).run)
