"""
Structural validation of normalized LLM output.

Field types are deliberately permissive: models mix numbers and numeric
strings freely, so numeric columns accept either. Required fields must be
present but may be null.
"""

from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from .errors import OutputValidationError, SchemaViolation


def _text_or_null(value: Any) -> Any:
    if value is not None and not isinstance(value, str):
        raise ValueError("expected string or null")
    return value


def _text_number_or_null(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("expected string, number or null")
    return value


Text = Annotated[Any, AfterValidator(_text_or_null)]
Number = Annotated[Any, AfterValidator(_text_number_or_null)]


class InvoiceShape(BaseModel):
    model_config = ConfigDict(extra="allow")

    invoice_key: Text
    supplier_name: Text
    supplier_gstin: Text
    buyer_name: Text
    buyer_gstin: Text
    invoice_number: Text
    invoice_date: Text
    invoice_total: Number

    due_date: Text = None
    payment_terms: Text = None
    invoice_month: Text = None
    place_of_supply_state: Text = None
    place_of_supply_code: Text = None
    currency: Text = None
    taxable_value: Number = None
    cgst_rate_pct: Number = None
    cgst_amount: Number = None
    sgst_rate_pct: Number = None
    sgst_amount: Number = None
    igst_rate_pct: Number = None
    igst_amount: Number = None
    rounding: Number = None
    balance_due: Number = None
    hsn_list: Text = None
    line_items_json: Text = None
    excel_mis_link: Text = None
    irn: Text = None
    ack_no: Text = None
    ack_date: Text = None
    bank_beneficiary: Text = None
    bank_name: Text = None
    bank_account_last4: Text = None
    bank_ifsc: Text = None
    po_number: Text = None


class LineItemShape(BaseModel):
    model_config = ConfigDict(extra="allow")

    invoice_key: Text
    invoice_number: Text
    description: Text
    line_no: Number
    line_amount: Number

    line_key: Text = None
    invoice_date: Text = None
    supplier_name: Text = None
    hsn_sac: Text = None
    quantity: Number = None
    unit_price: Number = None
    cgst_rate_pct: Number = None
    cgst_amount: Number = None
    sgst_rate_pct: Number = None
    sgst_amount: Number = None
    igst_rate_pct: Number = None
    igst_amount: Number = None
    po_number: Text = None


class NormalizedOutput(BaseModel):
    invoice: InvoiceShape
    line_items: list[LineItemShape]


def _field_path(loc: tuple) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "output"


def _problem(error: dict) -> str:
    kind = error["type"]
    if kind == "missing":
        return "missing"
    if kind == "value_error":
        return str(error["ctx"]["error"])
    if kind in ("model_type", "model_attributes_type", "dict_type"):
        return "expected object"
    if kind == "list_type":
        return "expected array"
    return error["msg"]


def violations_from(exc: ValidationError) -> list[SchemaViolation]:
    return [SchemaViolation(field=_field_path(err["loc"]), problem=_problem(err)) for err in exc.errors()]


def validate_output(obj: Any) -> dict:
    """
    Check one ``{"invoice": ..., "line_items": [...]}`` object.

    Returns the object unchanged when valid, otherwise raises
    OutputValidationError listing every violated field.
    """
    try:
        NormalizedOutput.model_validate(obj)
    except ValidationError as exc:
        raise OutputValidationError(violations_from(exc)) from exc
    return obj
