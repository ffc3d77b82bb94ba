from typing import Annotated, Any, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _number_to_text(value: Any) -> Any:
    # The extractor sometimes answers a text field with a bare number
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# Text field that tolerates numeric answers from the extractor
Text = Annotated[str, BeforeValidator(_number_to_text)]

# Numeric-or-text amount. Numbers are formatted for display, text passes through.
Amount = Union[int, float, str]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineItem(_CamelModel):
    description: Text | None = ""
    quantity: Amount | None = 0
    unit_price: Amount | None = 0
    total: Amount | None = 0


class InvoiceRecord(_CamelModel):
    """Structured fields extracted from a supplier invoice, keyed by template tag name"""

    supplier_name: Text | None = ""
    supplier_address: Text | None = ""
    supplier_postcode: Text | None = ""
    supplier_country: Text | None = ""
    supplier_email: Text | None = ""
    invoice_number: Text | None = ""
    invoice_date: Text | None = ""
    po_number: Text | None = ""
    invoice_description: Text | None = ""
    currency: Text | None = ""
    tax_rate: Text | None = ""
    subtotal: Amount | None = 0
    vat_amount: Amount | None = 0
    grand_total: Amount | None = 0
    line_items: list[LineItem] | None = Field(default_factory=list)

    def to_data(self) -> dict:
        """Plain dict keyed by template tag names (camelCase)"""
        return self.model_dump(by_alias=True)


def empty_record(currency: str = "USD") -> InvoiceRecord:
    return InvoiceRecord(currency=currency)


def blank_line_item() -> LineItem:
    return LineItem(description="", quantity=1, unit_price=0, total=0)
