"""
Post-extraction arithmetic checks for normalized invoices.

The model is instructed to keep tax amounts consistent with totals and to
allocate taxes across lines so column sums match. These checks verify that
after the fact. They only report; nothing is corrected or dropped.
"""

from typing import Dict, List

from loguru import logger
from pydantic import BaseModel

TAX_AMOUNT_FIELDS = ("cgst_amount", "sgst_amount", "igst_amount")


class TotalsCheck(BaseModel):
    """Result of the arithmetic checks with per-check detail"""
    ok: bool
    checks: Dict[str, bool]
    reasons: List[str] = []


def parse_amount(value) -> float | None:
    """Parse "₹1,234.50"-style amounts; blank or unparseable values give None."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).replace("₹", "").replace(",", "").replace("INR", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _within(a: float, b: float, tolerance: float) -> bool:
    return abs(round(a - b, 2)) <= tolerance + 1e-9


def check_invoice_totals(invoice: dict, line_items: list[dict], tolerance: float = 0.10) -> TotalsCheck:
    """
    Check one invoice's arithmetic.

    - taxable value + taxes + rounding equals the invoice total
    - line amounts sum to the taxable value
    - each tax column summed over lines equals the invoice's tax amount

    A check is skipped when any value it needs is blank or unparseable.
    """
    checks: Dict[str, bool] = {}
    reasons: List[str] = []

    taxable = parse_amount(invoice.get("taxable_value"))
    total = parse_amount(invoice.get("invoice_total"))
    rounding = parse_amount(invoice.get("rounding")) or 0.0
    taxes = {name: parse_amount(invoice.get(name)) for name in TAX_AMOUNT_FIELDS}

    # Check 1: components add up to the total
    if taxable is not None and total is not None:
        computed = taxable + sum(v for v in taxes.values() if v is not None) + rounding
        ok = _within(computed, total, tolerance)
        checks["total_matches_components"] = ok
        if not ok:
            reasons.append(f"Taxable value + taxes + rounding = {computed:.2f}, invoice total is {total:.2f}")

    # Check 2: line amounts add up to the taxable value
    line_amounts = [parse_amount(line.get("line_amount")) for line in line_items]
    if taxable is not None and line_amounts and None not in line_amounts:
        line_sum = sum(line_amounts)
        ok = _within(line_sum, taxable, tolerance)
        checks["lines_match_taxable_value"] = ok
        if not ok:
            reasons.append(f"Line amounts sum to {line_sum:.2f}, taxable value is {taxable:.2f}")

    # Check 3: per-tax allocation across lines
    for name, invoice_amount in taxes.items():
        line_values = [parse_amount(line.get(name)) for line in line_items]
        if invoice_amount is None or not line_values or None in line_values:
            continue
        line_sum = sum(line_values)
        ok = _within(line_sum, invoice_amount, tolerance)
        checks[f"lines_match_{name}"] = ok
        if not ok:
            reasons.append(f"Line {name} sums to {line_sum:.2f}, invoice {name} is {invoice_amount:.2f}")

    result = TotalsCheck(ok=all(checks.values()), checks=checks, reasons=reasons)
    if not result.ok:
        logger.warning(
            "Invoice totals do not reconcile",
            invoice_key=invoice.get("invoice_key", ""),
            reasons=reasons,
        )
    return result
