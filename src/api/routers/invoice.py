import json
from html import escape

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, Response
from loguru import logger
from pydantic import ValidationError

from ..deps import TEMPLATE_EXTENSIONS, TagGuideResponse, read_upload
from ...core.config import settings
from ...models.invoice import InvoiceRecord
from ...services.invoice_extractor import extract_invoice_fields
from ...services.irf import DOCX_MIME_TYPE, content_disposition, download_filename, generate_irf
from ...services.template_guide import tag_guide

router = APIRouter(prefix="/invoices", tags=["invoices"])


def docx_response(content: bytes, record: InvoiceRecord) -> Response:
    filename = download_filename(record)
    return Response(
        content=content,
        media_type=DOCX_MIME_TYPE,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.post("/extract", response_model=InvoiceRecord)
async def extract(file: UploadFile = File(...)):
    """
    Extract IRF fields from a supplier invoice (PDF or image) with Gemini.

    The result is not stored; use the /sessions endpoints for the
    upload → review → generate workflow.
    """
    upload = await read_upload(file, settings.invoice_extensions)
    return await run_in_threadpool(extract_invoice_fields, upload.content, upload.content_type)


@router.post("/generate")
async def generate(template: UploadFile = File(...), record: str = Form(...)):
    """
    Merge an invoice record (JSON, camelCase field names) into a .docx template.

    Returns the filled document as a download named IRF-<invoiceNumber>.docx.
    """
    try:
        invoice = InvoiceRecord.model_validate(json.loads(record))
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"Record is not valid JSON: {e}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    upload = await read_upload(template, TEMPLATE_EXTENSIONS)
    content = await run_in_threadpool(generate_irf, upload.content, invoice)
    logger.info("IRF generated", filename=download_filename(invoice), size_bytes=len(content))
    return docx_response(content, invoice)


@router.get("/template-tags", response_model=TagGuideResponse)
async def template_tags():
    """Tags the IRF template can contain"""
    return tag_guide()


@router.get("/template-guide", response_class=HTMLResponse)
async def template_guide():
    """Human readable version of /invoices/template-tags"""
    guide = tag_guide()

    def rows(items):
        return "".join(
            f"<tr><td><code>{escape(row['tag'])}</code></td><td>{escape(row['description'])}</td></tr>"
            for row in items
        )

    loop = guide["lineItems"]
    loop_body = "<br>".join(
        f"&nbsp;&nbsp;{escape(row['description'])}: {escape(row['tag'])}" for row in loop["fields"]
    )
    return f"""
    <html>
        <body style="font-family: Arial; max-width: 720px; margin: 40px auto;">
            <h2>Template Tag Guide</h2>
            <p>Add these tags to your Word document. They are replaced with the extracted invoice data.</p>
            <h3>Basic Fields</h3>
            <table>{rows(guide["basicFields"])}</table>
            <h3>Address Fields</h3>
            <table>{rows(guide["addressFields"])}</table>
            <h3>Line Items Table</h3>
            <p>To list items, create a table row in Word and wrap the fields with the loop tags:</p>
            <pre>{escape(loop["start"])}<br>{loop_body}<br>{escape(loop["end"])}</pre>
            <p><em>Note: {escape(loop["note"])}</em></p>
        </body>
    </html>
    """
