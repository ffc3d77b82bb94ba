"""Tags an IRF template can use, grouped the way the template guide shows them"""

BASIC_FIELDS = [
    ("{supplierName}", "Supplier Name"),
    ("{supplierEmail}", "Supplier Email"),
    ("{invoiceNumber}", "Invoice #"),
    ("{invoiceDate}", "Date (YYYY-MM-DD)"),
    ("{poNumber}", "Purchase Order #"),
    ("{invoiceDescription}", "Description of Services"),
    ("{currency}", "Currency Code (e.g., USD)"),
    ("{taxRate}", "Tax Rate / %"),
    ("{subtotal}", "Subtotal Amount"),
    ("{vatAmount}", "VAT/Tax Amount"),
    ("{grandTotal}", "Total Amount Due"),
    ("{generatedDate}", "Today's Date"),
]

ADDRESS_FIELDS = [
    ("{supplierAddress}", "Full Address Block"),
    ("{supplierPostcode}", "Postal/Zip Code"),
    ("{supplierCountry}", "Country"),
]

LINE_ITEM_FIELDS = [
    ("{description}", "Description"),
    ("{quantity}", "Qty"),
    ("{unitPrice}", "Price"),
    ("{total}", "Total"),
]

LOOP_START = "{#lineItems}"
LOOP_END = "{/lineItems}"

LOOP_NOTE = "Place the opening and closing tags inside the table row to repeat that row for each item."


def tag_guide() -> dict:
    def rows(pairs):
        return [{"tag": tag, "description": desc} for tag, desc in pairs]

    return {
        "basicFields": rows(BASIC_FIELDS),
        "addressFields": rows(ADDRESS_FIELDS),
        "lineItems": {
            "start": LOOP_START,
            "end": LOOP_END,
            "fields": rows(LINE_ITEM_FIELDS),
            "note": LOOP_NOTE,
        },
    }
