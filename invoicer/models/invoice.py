from pydantic import BaseModel, Field

# Column order of the target "Invoices" tab; LLM output keys match these names exactly.
INVOICE_HEADERS = [
    "invoice_key", "supplier_name", "supplier_gstin", "buyer_name", "buyer_gstin",
    "invoice_number", "invoice_date", "due_date", "payment_terms", "invoice_month",
    "place_of_supply_state", "place_of_supply_code", "currency", "taxable_value",
    "cgst_rate_pct", "cgst_amount", "sgst_rate_pct", "sgst_amount", "igst_rate_pct",
    "igst_amount", "rounding", "invoice_total", "balance_due", "hsn_list",
    "line_items_json", "excel_mis_link", "irn", "ack_no", "ack_date",
    "bank_beneficiary", "bank_name", "bank_account_last4", "bank_ifsc", "po_number",
]

# Column order of the target "Invoice Line Items" tab.
LINE_HEADERS = [
    "line_key", "invoice_key", "invoice_number", "invoice_date", "supplier_name",
    "description", "hsn_sac", "line_no", "quantity", "unit_price", "line_amount",
    "cgst_rate_pct", "cgst_amount", "sgst_rate_pct", "sgst_amount", "igst_rate_pct",
    "igst_amount", "po_number",
]

InvoiceRecord = dict[str, str]
LineItemRecord = dict[str, str]


def to_string_record(obj: dict | None) -> dict[str, str]:
    """Flatten an LLM output object to sheet-ready strings (None becomes "")."""
    return {key: "" if value is None else str(value) for key, value in (obj or {}).items()}


def make_invoice_key(supplier_gstin: str, invoice_number: str) -> str:
    return f"{supplier_gstin}|{invoice_number}"


def is_complete_key(key: str) -> bool:
    """True unless the key is blank or has a blank ``|`` part."""
    return all(part.strip() for part in key.split("|"))


def ensure_invoice_key(invoice: InvoiceRecord) -> str:
    """
    Return the invoice's key, deriving it from GSTIN and invoice number when blank.

    A key with a blank ``|`` part (``"|"``, ``"29G|"``) was built from missing
    fields and counts as blank. The derived key is written back onto the
    record. An empty string means the invoice cannot be keyed at all.
    """
    key = invoice.get("invoice_key", "").strip()
    if is_complete_key(key):
        return key
    gstin = invoice.get("supplier_gstin", "").strip()
    number = invoice.get("invoice_number", "").strip()
    key = make_invoice_key(gstin, number) if gstin and number else ""
    invoice["invoice_key"] = key
    return key


class NormalizeRequest(BaseModel):
    markdown: str | None = None
    markdowns: list[str] | None = None


class NormalizedInvoice(BaseModel):
    invoice: dict
    line_items: list[dict] = Field(default_factory=list)
