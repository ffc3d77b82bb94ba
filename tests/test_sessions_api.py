"""
End-to-end tests for the upload → review → generate workflow over HTTP.
"""

import io

import pytest
from fastapi.testclient import TestClient

from conftest import open_docx
from src.api.main import app
from src.services.irf import generate_irf
from src.services.storage import session_store

client = TestClient(app)

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def create_session() -> str:
    r = client.post("/sessions")
    assert r.status_code == 201
    return r.json()["id"]


def upload_invoice(session_id: str, content: bytes = b"%PDF-1.4 invoice", filename: str = "invoice.pdf"):
    files = {"file": (filename, io.BytesIO(content), "application/pdf")}
    return client.put(f"/sessions/{session_id}/invoice", files=files)


def upload_template(session_id: str, content: bytes, filename: str = "irf.docx"):
    files = {"file": (filename, io.BytesIO(content), DOCX)}
    return client.put(f"/sessions/{session_id}/template", files=files)


@pytest.fixture
def template(make_template):
    return make_template("IRF {invoiceNumber} for {supplierName}", "{#lineItems}", "{description}: {total}", "{/lineItems}")


@pytest.fixture
def reviewing_session(gemini, template):
    session_id = create_session()
    upload_invoice(session_id)
    upload_template(session_id, template)
    r = client.post(f"/sessions/{session_id}/extract")
    assert r.json()["status"] == "reviewing"
    return session_id


def test_full_workflow(gemini, template):
    session_id = create_session()
    assert client.get(f"/sessions/{session_id}").json()["status"] == "empty"

    body = upload_invoice(session_id).json()
    assert body["invoiceFile"]["filename"] == "invoice.pdf"
    body = upload_template(session_id, template).json()
    assert body["templateFile"]["filename"] == "irf.docx"

    r = client.post(f"/sessions/{session_id}/extract")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "reviewing"
    assert body["record"]["invoiceNumber"] == "INV-42"

    r = client.patch(f"/sessions/{session_id}/record", json={"supplierName": "Apex Events"})
    assert r.json()["record"]["supplierName"] == "Apex Events"

    r = client.post(f"/sessions/{session_id}/generate")
    assert r.status_code == 200
    assert r.headers["content-disposition"] == 'attachment; filename="IRF-INV-42.docx"'
    paragraphs = [p.text for p in open_docx(r.content).paragraphs]
    assert paragraphs == ["IRF INV-42 for Apex Events", "Paddock Club passes: 1000", "Catering: 234.5"]

    body = client.get(f"/sessions/{session_id}").json()
    assert body["status"] == "empty"
    assert body["invoiceFile"] is None
    assert body["templateFile"]["filename"] == "irf.docx"
    assert body["record"]["invoiceNumber"] == ""


def test_extract_before_uploads_returns_409(gemini):
    session_id = create_session()
    upload_invoice(session_id)
    r = client.post(f"/sessions/{session_id}/extract")
    assert r.status_code == 409
    assert r.json()["error"] == "session_state"


def test_extraction_failure_moves_to_failed(gemini, template):
    gemini.models.generate_content.side_effect = RuntimeError("quota exceeded")
    session_id = create_session()
    upload_invoice(session_id)
    upload_template(session_id, template)

    r = client.post(f"/sessions/{session_id}/extract")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "failed"
    assert "quota exceeded" in body["errorMessage"]

    body = client.post(f"/sessions/{session_id}/try-again").json()
    assert body["status"] == "empty"
    assert body["errorMessage"] is None
    assert body["invoiceFile"]["filename"] == "invoice.pdf"

    gemini.models.generate_content.side_effect = None
    assert client.post(f"/sessions/{session_id}/extract").json()["status"] == "reviewing"


def test_extraction_without_key_fails_session(no_gemini_key, template):
    session_id = create_session()
    upload_invoice(session_id)
    upload_template(session_id, template)
    body = client.post(f"/sessions/{session_id}/extract").json()
    assert body["status"] == "failed"
    assert "API key is missing" in body["errorMessage"]


def test_line_item_editing(reviewing_session):
    r = client.post(f"/sessions/{reviewing_session}/line-items")
    assert r.status_code == 201
    items = r.json()["record"]["lineItems"]
    assert len(items) == 3
    assert items[2]["quantity"] == 1

    r = client.patch(f"/sessions/{reviewing_session}/line-items/2", json={"description": "Parking", "total": 40})
    assert r.json()["record"]["lineItems"][2]["description"] == "Parking"

    r = client.delete(f"/sessions/{reviewing_session}/line-items/0")
    assert [i["description"] for i in r.json()["record"]["lineItems"]] == ["Catering", "Parking"]


def test_line_item_out_of_range_returns_404(reviewing_session):
    r = client.patch(f"/sessions/{reviewing_session}/line-items/9", json={"total": 1})
    assert r.status_code == 404


def test_unknown_record_field_returns_422(reviewing_session):
    r = client.patch(f"/sessions/{reviewing_session}/record", json={"purchaseRef": "x"})
    assert r.status_code == 422


def test_edit_before_extraction_returns_409(gemini):
    session_id = create_session()
    r = client.patch(f"/sessions/{session_id}/record", json={"poNumber": "PO-1"})
    assert r.status_code == 409


def test_template_error_keeps_session_in_review(gemini, make_template):
    session_id = create_session()
    upload_invoice(session_id)
    upload_template(session_id, make_template("{purchaseRef}"))
    client.post(f"/sessions/{session_id}/extract")

    r = client.post(f"/sessions/{session_id}/generate")
    assert r.status_code == 422
    assert r.json()["errors"] == ['Unresolved tag "{purchaseRef}"']
    assert client.get(f"/sessions/{session_id}").json()["status"] == "reviewing"

    upload_template(session_id, make_template("{invoiceNumber}"))
    r = client.post(f"/sessions/{session_id}/generate")
    assert r.status_code == 200


def test_reset_clears_everything(reviewing_session):
    body = client.post(f"/sessions/{reviewing_session}/reset").json()
    assert body["status"] == "empty"
    assert body["invoiceFile"] is None
    assert body["templateFile"] is None


def test_wrong_upload_types(gemini):
    session_id = create_session()
    assert upload_invoice(session_id, filename="invoice.docx").status_code == 415
    assert upload_template(session_id, b"%PDF", filename="irf.pdf").status_code == 415


def test_unknown_session_returns_404():
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/extract").status_code == 404


def test_delete_session():
    session_id = create_session()
    assert client.delete(f"/sessions/{session_id}").status_code == 204
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_expired_session_returns_404(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(session_store, "_clock", lambda: now[0])
    monkeypatch.setattr(session_store, "ttl_seconds", 60)
    session_id = create_session()

    now[0] += 59
    assert client.get(f"/sessions/{session_id}").status_code == 200

    now[0] += 61
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_session_generate_runs_merge_off_the_event_loop(reviewing_session, monkeypatch):
    calls = []

    async def threadpool(func, *args, **kwargs):
        calls.append(func)
        return func(*args, **kwargs)

    monkeypatch.setattr("src.api.routers.sessions.run_in_threadpool", threadpool)
    r = client.post(f"/sessions/{reviewing_session}/generate")
    assert r.status_code == 200
    assert calls == [generate_irf]
