from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from pydantic import ValidationError

from .invoice import docx_response
from ..deps import TEMPLATE_EXTENSIONS, get_session, read_upload
from ...core.config import settings
from ...services.errors import ExtractionError
from ...services.invoice_extractor import extract_invoice_fields
from ...services.irf import generate_irf
from ...services.review_session import ReviewSession
from ...services.storage import session_store

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _edit(action, *args):
    """Run a record edit, turning bad input into HTTP errors"""
    try:
        return action(*args)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too
        if isinstance(e, ValidationError):
            raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
        raise HTTPException(status_code=422, detail=str(e))


@router.post("", status_code=201)
async def create_session():
    """Start a new review session (status: empty)"""
    session = session_store.create()
    logger.info("Review session created", session_id=session.id)
    return session.to_dict()


@router.get("/{session_id}")
async def read_session(session: ReviewSession = Depends(get_session)):
    return session.to_dict()


@router.delete("/{session_id}", status_code=204)
async def delete_session(session: ReviewSession = Depends(get_session)):
    session_store.delete(session.id)


@router.put("/{session_id}/invoice")
async def upload_invoice(file: UploadFile = File(...), session: ReviewSession = Depends(get_session)):
    """Attach the supplier invoice (PDF/image)"""
    upload = await read_upload(file, settings.invoice_extensions)
    session.attach_invoice(upload)
    return session.to_dict()


@router.put("/{session_id}/template")
async def upload_template(file: UploadFile = File(...), session: ReviewSession = Depends(get_session)):
    """Attach the IRF template (.docx)"""
    upload = await read_upload(file, TEMPLATE_EXTENSIONS)
    session.attach_template(upload)
    return session.to_dict()


@router.post("/{session_id}/extract")
async def extract(session: ReviewSession = Depends(get_session)):
    """
    Run extraction on the attached invoice.

    An extraction failure is not an HTTP error: the session moves to
    'failed' and carries the message in errorMessage.
    """
    invoice = session.begin_extraction()
    try:
        record = await run_in_threadpool(extract_invoice_fields, invoice.content, invoice.content_type)
    except ExtractionError as e:
        logger.warning(f"Extraction failed for session {session.id}: {str(e)}")
        session.fail_extraction(str(e))
    else:
        session.complete_extraction(record)
    return session.to_dict()


@router.patch("/{session_id}/record")
async def update_record(changes: dict[str, Any] = Body(...), session: ReviewSession = Depends(get_session)):
    """Edit one or more fields of the extracted record (camelCase names)"""
    _edit(session.update_fields, changes)
    return session.to_dict()


@router.post("/{session_id}/line-items", status_code=201)
async def add_line_item(session: ReviewSession = Depends(get_session)):
    _edit(session.add_line_item)
    return session.to_dict()


@router.patch("/{session_id}/line-items/{index}")
async def update_line_item(
    index: int,
    changes: dict[str, Any] = Body(...),
    session: ReviewSession = Depends(get_session),
):
    _edit(session.update_line_item, index, changes)
    return session.to_dict()


@router.delete("/{session_id}/line-items/{index}")
async def remove_line_item(index: int, session: ReviewSession = Depends(get_session)):
    _edit(session.remove_line_item, index)
    return session.to_dict()


@router.post("/{session_id}/generate")
async def generate(session: ReviewSession = Depends(get_session)):
    """
    Generate the IRF download from the reviewed record.

    On success the session goes back to 'empty' with the template kept for
    the next invoice. Template errors leave the session in review.
    """
    template, record = session.ready_to_generate()
    content = await run_in_threadpool(generate_irf, template.content, record)
    response = docx_response(content, record)
    session.finish_download()
    logger.info("IRF downloaded", session_id=session.id, size_bytes=len(content))
    return response


@router.post("/{session_id}/try-again")
async def try_again(session: ReviewSession = Depends(get_session)):
    """Leave the failed state, keeping the uploaded files"""
    session.try_again()
    return session.to_dict()


@router.post("/{session_id}/reset")
async def reset(session: ReviewSession = Depends(get_session)):
    """New invoice: clear files, record and errors"""
    session.reset()
    return session.to_dict()
