#!/usr/bin/env python3
"""
IRF Client - generate one Invoice Request Form from the command line

Sends a supplier invoice to the API for extraction, merges the extracted
fields into a Word template, and saves the filled document.

Usage:
    python irf_client.py --invoice ./invoice.pdf --template ./irf-template.docx
    python irf_client.py --invoice ./invoice.png --template ./irf.docx --out ./out --api-url http://127.0.0.1:8000
"""

import argparse
import json
import mimetypes
import re
import sys
from pathlib import Path
from urllib.parse import unquote

import httpx

API_BASE_URL = "http://127.0.0.1:8000"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class IRFClientError(Exception):
    """The API answered with an error"""


def _raise_for_error(response: httpx.Response, step: str) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
        detail = body.get("detail", body)
    except ValueError:
        detail = response.text
    raise IRFClientError(f"{step} failed ({response.status_code}): {detail}")


def _safe_filename(name: str) -> str:
    return re.sub(r"[\\/]", "-", name)


def _filename_from_headers(response: httpx.Response, default: str) -> str:
    disposition = response.headers.get("content-disposition", "")
    match = re.search(r"filename\*=UTF-8''([^;\s]+)", disposition, re.IGNORECASE)
    if match:
        return _safe_filename(unquote(match.group(1)))
    match = re.search(r'filename="([^"]+)"', disposition)
    return _safe_filename(match.group(1) if match else default)


def extract_invoice(client: httpx.Client, invoice_path: Path) -> dict:
    mime_type = mimetypes.guess_type(invoice_path.name)[0] or "application/octet-stream"
    with open(invoice_path, "rb") as f:
        files = {"file": (invoice_path.name, f, mime_type)}
        response = client.post("/invoices/extract", files=files)
    _raise_for_error(response, "Extraction")
    return response.json()


def generate_irf(client: httpx.Client, template_path: Path, record: dict) -> tuple[str, bytes]:
    with open(template_path, "rb") as f:
        files = {"template": (template_path.name, f, DOCX_MIME_TYPE)}
        response = client.post("/invoices/generate", files=files, data={"record": json.dumps(record)})
    _raise_for_error(response, "IRF generation")
    draft_name = f"IRF-{record.get('invoiceNumber') or 'Draft'}.docx"
    return _filename_from_headers(response, draft_name), response.content


def run(invoice_path: Path, template_path: Path, out_dir: Path, api_url: str = API_BASE_URL, timeout: float = 120.0) -> Path:
    """Extract, merge and save; returns the path of the written .docx"""
    with httpx.Client(base_url=api_url, timeout=timeout) as client:
        print(f"📄 Extracting: {invoice_path.name}")
        record = extract_invoice(client, invoice_path)
        print(f"   Supplier: {record.get('supplierName') or 'N/A'}")
        print(f"   Invoice #: {record.get('invoiceNumber') or 'N/A'}")
        print(f"   Total: {record.get('currency', '')} {record.get('grandTotal', 0)}")
        print(f"   Line items: {len(record.get('lineItems') or [])}")

        print(f"📝 Filling template: {template_path.name}")
        filename, content = generate_irf(client, template_path, record)

    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / filename
    out_path.write_bytes(content)
    print(f"✅ Saved {out_path}")
    return out_path


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate an IRF document from a supplier invoice")
    parser.add_argument("--invoice", required=True, help="Supplier invoice (PDF/PNG/JPG)")
    parser.add_argument("--template", required=True, help="IRF template (.docx)")
    parser.add_argument("--out", default=".", help="Output folder (default: current directory)")
    parser.add_argument("--api-url", default=API_BASE_URL, help=f"API base URL (default: {API_BASE_URL})")
    args = parser.parse_args(argv)

    invoice_path = Path(args.invoice)
    template_path = Path(args.template)
    for path in (invoice_path, template_path):
        if not path.exists():
            print(f"❌ File not found: {path}")
            return 1

    try:
        run(invoice_path, template_path, Path(args.out), api_url=args.api_url)
    except (IRFClientError, httpx.HTTPError) as e:
        print(f"❌ {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
