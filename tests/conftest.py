"""
Pytest configuration and shared fixtures.

Registers the integration marker/option and provides helpers for building
.docx templates in memory and faking the Gemini client.
"""

import json
from io import BytesIO
from unittest.mock import Mock, patch

import pytest
from docx import Document

from src.core.config import settings
from src.models.invoice import InvoiceRecord, LineItem
from src.services.storage import session_store


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the real Gemini API"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a real Gemini API key"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


SAMPLE_EXTRACTION = {
    "supplierName": "Apex Hospitality Ltd",
    "supplierEmail": "accounts@apex.example",
    "supplierAddress": "1 Paddock Lane\nSilverstone",
    "supplierPostcode": "NN12 8TN",
    "supplierCountry": "United Kingdom",
    "invoiceNumber": "INV-42",
    "invoiceDate": "2026-10-01",
    "poNumber": "PO-7781",
    "invoiceDescription": "Hospitality Services",
    "currency": "GBP",
    "taxRate": "20%",
    "subtotal": 1234.5,
    "vatAmount": 246.9,
    "grandTotal": 1481.4,
    "lineItems": [
        {"description": "Paddock Club passes", "quantity": 2, "unitPrice": 500, "total": 1000},
        {"description": "Catering", "quantity": 1, "unitPrice": 234.5, "total": 234.5},
    ],
}


def docx_bytes(document) -> bytes:
    out = BytesIO()
    document.save(out)
    return out.getvalue()


def open_docx(content: bytes):
    return Document(BytesIO(content))


@pytest.fixture
def make_template():
    """Build a .docx with one paragraph per argument, plus optional header/footer text"""

    def build(*paragraphs: str, header: str | None = None, footer: str | None = None) -> bytes:
        document = Document()
        for text in paragraphs:
            document.add_paragraph(text)
        if header is not None:
            document.sections[0].header.paragraphs[0].text = header
        if footer is not None:
            document.sections[0].footer.paragraphs[0].text = footer
        return docx_bytes(document)

    return build


@pytest.fixture
def sample_record() -> InvoiceRecord:
    return InvoiceRecord.model_validate(SAMPLE_EXTRACTION)


@pytest.fixture
def three_item_record() -> InvoiceRecord:
    return InvoiceRecord(
        invoice_number="INV-3",
        currency="EUR",
        line_items=[
            LineItem(description="Track rental", quantity=1, unit_price=900, total=900),
            LineItem(description="Marshals", quantity=4, unit_price=120.5, total=482.0),
            LineItem(description="Fuel", quantity=60, unit_price=2.25, total=135.0),
        ],
    )


@pytest.fixture
def gemini(monkeypatch):
    """
    Configure an API key and replace the Gemini client with a mock.

    The mock answers with SAMPLE_EXTRACTION; tests can change
    ``gemini.models.generate_content`` to simulate other answers.
    """
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    client = Mock()
    client.models.generate_content.return_value = Mock(text=json.dumps(SAMPLE_EXTRACTION))
    with patch("src.services.invoice_extractor.get_client", return_value=client):
        yield client


@pytest.fixture
def no_gemini_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)


@pytest.fixture(autouse=True)
def clear_sessions():
    session_store.clear()
    yield
    session_store.clear()
