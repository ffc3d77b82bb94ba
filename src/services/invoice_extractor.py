import json

from google import genai
from google.genai import types
from loguru import logger
from pydantic import ValidationError

from .errors import ExtractionError
from ..core.config import settings
from ..models.invoice import InvoiceRecord

SYSTEM_INSTRUCTION = """
You are an expert data extraction assistant for a motorsport events procurement team.
Your task is to extract structured data from supplier invoice images/PDFs.
The data will be used to populate an Invoice Request Form (IRF).

Key requirements:
1. Extract the supplier name, email address, full address, specific postcode, country, invoice number, date, and PO number (if available).
2. Extract the table of line items (description, quantity, unit price, line total).
3. Extract financial totals (subtotal, VAT/Tax amount, and Grand Total).
4. Identify the currency code (e.g., USD, EUR, GBP).
5. Extract a brief description/summary of what the invoice is for (e.g. "Hospitality Services", "Track Rental").
6. If a field is not found, return an empty string or 0.
7. Be highly accurate with numbers.
"""

USER_PROMPT = "Extract data from this invoice."

_STRING = types.Schema(type=types.Type.STRING)
_NUMBER = types.Schema(type=types.Type.NUMBER)

RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "supplierName": _STRING,
        "supplierEmail": _STRING,
        "supplierAddress": _STRING,
        "supplierPostcode": _STRING,
        "supplierCountry": _STRING,
        "invoiceNumber": _STRING,
        "invoiceDate": _STRING,
        "poNumber": _STRING,
        "invoiceDescription": types.Schema(
            type=types.Type.STRING,
            description="A brief summary of the services or goods provided",
        ),
        "currency": _STRING,
        "taxRate": types.Schema(
            type=types.Type.STRING,
            description="The tax percentage or rate if found",
        ),
        "subtotal": _NUMBER,
        "vatAmount": _NUMBER,
        "grandTotal": _NUMBER,
        "lineItems": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "description": _STRING,
                    "quantity": _NUMBER,
                    "unitPrice": _NUMBER,
                    "total": _NUMBER,
                },
            ),
        ),
    },
)


def get_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def extract_invoice_fields(file_bytes: bytes, mime_type: str) -> InvoiceRecord:
    """
    Extract an InvoiceRecord from an invoice PDF or image using Gemini.

    One request, no retries. Raises ExtractionError when the API key is not
    configured, the call fails, or the answer is not the expected JSON shape.
    """
    if not settings.gemini_api_key:
        raise ExtractionError("API key is missing. Set GEMINI_API_KEY to enable invoice extraction.")

    logger.info(
        "Extracting invoice with Gemini",
        model=settings.gemini_model,
        mime_type=mime_type,
        size_bytes=len(file_bytes),
    )

    try:
        client = get_client(settings.gemini_api_key)
        response = client.models.generate_content(
            model=settings.gemini_model,
            contents=[
                types.Part.from_bytes(data=file_bytes, mime_type=mime_type),
                USER_PROMPT,
            ],
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                response_mime_type="application/json",
                response_schema=RESPONSE_SCHEMA,
                temperature=settings.gemini_temperature,
            ),
        )
    except Exception as e:
        logger.error(f"Gemini extraction call failed: {str(e)}")
        raise ExtractionError(f"Invoice extraction failed: {str(e)}") from e

    if not response.text:
        raise ExtractionError("No data returned from Gemini.")

    try:
        record = InvoiceRecord.model_validate(json.loads(response.text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Failed to parse Gemini JSON response: {str(e)}")
        raise ExtractionError("Failed to parse invoice data.") from e

    logger.info(
        "Invoice extracted",
        invoice_number=record.invoice_number,
        supplier=record.supplier_name,
        line_items=len(record.line_items or []),
    )
    return record
