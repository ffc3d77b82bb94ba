import mimetypes
from pathlib import Path

from fastapi import HTTPException, UploadFile
from pydantic import BaseModel

from ..core.config import settings
from ..services.review_session import ReviewSession, UploadedFile
from ..services.storage import session_store


class TagRow(BaseModel):
    tag: str
    description: str


class LineItemGuide(BaseModel):
    start: str
    end: str
    fields: list[TagRow]
    note: str


class TagGuideResponse(BaseModel):
    basicFields: list[TagRow]
    addressFields: list[TagRow]
    lineItems: LineItemGuide


TEMPLATE_EXTENSIONS = {".docx"}


async def read_upload(file: UploadFile, allowed_extensions: set[str]) -> UploadedFile:
    """Read an upload fully into memory after checking its extension and size"""
    filename = file.filename or ""
    extension = Path(filename).suffix.lower()
    if extension not in allowed_extensions:
        allowed = ", ".join(sorted(allowed_extensions))
        raise HTTPException(status_code=415, detail=f"Unsupported file type '{extension or filename}'. Allowed: {allowed}")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=422, detail=f"Uploaded file '{filename}' is empty")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.max_upload_mb:g} MB limit")

    content_type = file.content_type
    if not content_type or content_type == "application/octet-stream":
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

    return UploadedFile(filename=filename, content_type=content_type, content=content)


def get_session(session_id: str) -> ReviewSession:
    session = session_store.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session
