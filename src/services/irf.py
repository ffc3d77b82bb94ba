"""
IRF (Invoice Request Form) generation.

Merges a reviewed InvoiceRecord into the user's .docx template.
"""

import re
from datetime import date
from urllib.parse import quote

from loguru import logger

from .docx_template import DOCX_MIME_TYPE, render_docx
from .normalize import build_template_data
from ..models.invoice import InvoiceRecord

_PATH_SEPARATORS = re.compile(r"[\\/]")


def generate_irf(template: bytes, record: InvoiceRecord, today: date | None = None) -> bytes:
    """
    Fill the IRF template with the invoice record.

    Raises TemplateError (every unresolved or malformed tag, one per line) or
    TemplatePackageError when the template is not a Word document.
    """
    data = build_template_data(record, today=today)
    logger.info(
        "Generating IRF",
        invoice_number=data.get("invoiceNumber"),
        line_items=len(data.get("lineItems") or []),
        template_bytes=len(template),
    )
    return render_docx(template, data)


def download_filename(record: InvoiceRecord) -> str:
    invoice_number = _PATH_SEPARATORS.sub("-", (record.invoice_number or "").strip())
    return f"IRF-{invoice_number or 'Draft'}.docx"


def content_disposition(filename: str) -> str:
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    escaped = filename.replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


__all__ = ["DOCX_MIME_TYPE", "generate_irf", "download_filename", "content_disposition"]
