"""
Tests for the command line client, with the API mocked by respx.
"""

import json

import httpx
import pytest
import respx

import irf_client
from conftest import SAMPLE_EXTRACTION

API = "http://irf.test"


@pytest.fixture
def files(tmp_path):
    invoice = tmp_path / "invoice.pdf"
    invoice.write_bytes(b"%PDF-1.4")
    template = tmp_path / "irf.docx"
    template.write_bytes(b"PK template")
    return invoice, template


@respx.mock
def test_run_extracts_generates_and_saves(files, tmp_path):
    invoice, template = files
    extract_route = respx.post(f"{API}/invoices/extract").mock(
        return_value=httpx.Response(200, json=SAMPLE_EXTRACTION)
    )
    generate_route = respx.post(f"{API}/invoices/generate").mock(
        return_value=httpx.Response(
            200,
            content=b"DOCX BYTES",
            headers={"Content-Disposition": 'attachment; filename="IRF-INV-42.docx"'},
        )
    )

    out_path = irf_client.run(invoice, template, tmp_path / "out", api_url=API)

    assert out_path == tmp_path / "out" / "IRF-INV-42.docx"
    assert out_path.read_bytes() == b"DOCX BYTES"
    assert extract_route.called
    body = generate_route.calls.last.request.read()
    assert b'name="template"; filename="irf.docx"' in body
    assert json.dumps(SAMPLE_EXTRACTION).encode() in body


@respx.mock
def test_filename_falls_back_to_invoice_number(files, tmp_path):
    invoice, template = files
    respx.post(f"{API}/invoices/extract").mock(return_value=httpx.Response(200, json={"invoiceNumber": "A1"}))
    respx.post(f"{API}/invoices/generate").mock(return_value=httpx.Response(200, content=b"x"))

    out_path = irf_client.run(invoice, template, tmp_path, api_url=API)

    assert out_path.name == "IRF-A1.docx"


@respx.mock
def test_extraction_error_is_reported(files, tmp_path):
    invoice, template = files
    respx.post(f"{API}/invoices/extract").mock(
        return_value=httpx.Response(502, json={"detail": "No data returned from Gemini.", "error": "extraction"})
    )

    with pytest.raises(irf_client.IRFClientError, match="Extraction failed \\(502\\): No data returned"):
        irf_client.run(invoice, template, tmp_path, api_url=API)


@respx.mock
def test_main_returns_1_on_template_error(files, tmp_path, capsys):
    invoice, template = files
    respx.post(f"{API}/invoices/extract").mock(return_value=httpx.Response(200, json=SAMPLE_EXTRACTION))
    respx.post(f"{API}/invoices/generate").mock(
        return_value=httpx.Response(422, json={"detail": 'Template Error: Unresolved tag "{x}"'})
    )

    code = irf_client.main(
        ["--invoice", str(invoice), "--template", str(template), "--out", str(tmp_path), "--api-url", API]
    )

    assert code == 1
    assert 'Unresolved tag "{x}"' in capsys.readouterr().out


def test_main_missing_file(tmp_path, capsys):
    code = irf_client.main(["--invoice", str(tmp_path / "nope.pdf"), "--template", str(tmp_path / "t.docx")])
    assert code == 1
    assert "File not found" in capsys.readouterr().out


@respx.mock
def test_non_ascii_filename_from_server(files, tmp_path):
    invoice, template = files
    respx.post(f"{API}/invoices/extract").mock(return_value=httpx.Response(200, json={"invoiceNumber": "Nº5/2026"}))
    respx.post(f"{API}/invoices/generate").mock(
        return_value=httpx.Response(
            200,
            content=b"x",
            headers={"Content-Disposition": "attachment; filename*=UTF-8''IRF-N%C2%BA5-2026.docx"},
        )
    )

    out_path = irf_client.run(invoice, template, tmp_path, api_url=API)

    assert out_path == tmp_path / "IRF-Nº5-2026.docx"
    assert out_path.read_bytes() == b"x"


@respx.mock
def test_fallback_filename_replaces_path_separators(files, tmp_path):
    invoice, template = files
    respx.post(f"{API}/invoices/extract").mock(return_value=httpx.Response(200, json={"invoiceNumber": "Nº5/2026"}))
    respx.post(f"{API}/invoices/generate").mock(return_value=httpx.Response(200, content=b"x"))

    out_path = irf_client.run(invoice, template, tmp_path, api_url=API)

    assert out_path == tmp_path / "IRF-Nº5-2026.docx"
    assert out_path.exists()
