"""
Preparation of an InvoiceRecord for the IRF template.

The template engine renders whatever it is given, so nulls from the
extractor are blanked out and the monetary totals are turned into display
strings before merge.
"""

from datetime import date
from typing import Any

from ..core.config import settings
from ..models.invoice import Amount, InvoiceRecord

# Totals that are shown as formatted money in the template
FORMATTED_AMOUNT_FIELDS = ("subtotal", "vatAmount", "grandTotal")


def sanitize(data: Any) -> Any:
    """Recursively replace None leaves with "" keeping list and dict structure"""
    if isinstance(data, list):
        return [sanitize(item) for item in data]
    if isinstance(data, dict):
        return {key: sanitize(value) for key, value in data.items()}
    if data is None:
        return ""
    return data


def format_amount(
    value: Amount,
    group_separator: str | None = None,
    decimal_separator: str | None = None,
) -> str:
    """
    Format a numeric amount with grouping and exactly two decimals.

    Text values (the extractor answering "N/A", or a blanked null) are
    returned unchanged.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value

    group_separator = settings.number_group_separator if group_separator is None else group_separator
    decimal_separator = settings.number_decimal_separator if decimal_separator is None else decimal_separator

    text = f"{value:,.2f}"
    return text.replace(",", "\0").replace(".", decimal_separator).replace("\0", group_separator)


def format_short_date(day: date, fmt: str | None = None) -> str:
    return day.strftime(fmt or settings.short_date_format)


def build_template_data(record: InvoiceRecord, today: date | None = None) -> dict:
    """Data map handed to the template engine for one IRF"""
    data = sanitize(record.to_data())
    for field in FORMATTED_AMOUNT_FIELDS:
        data[field] = format_amount(data[field])
    data["generatedDate"] = format_short_date(today or date.today())
    if data.get("lineItems") == "":
        data["lineItems"] = []
    return data
