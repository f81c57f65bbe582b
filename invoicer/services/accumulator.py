from ..models.invoice import InvoiceRecord, LineItemRecord


class Accumulator:
    """
    Collects invoice and line item rows over one processing run.

    Append-only; duplicates are resolved by the sheet reconciler at write time.
    """

    def __init__(self):
        self.invoices: list[InvoiceRecord] = []
        self.lines: list[LineItemRecord] = []

    def add_invoice(self, record: InvoiceRecord) -> None:
        self.invoices.append(record)

    def add_lines(self, records: list[LineItemRecord]) -> None:
        self.lines.extend(records)

    def clear(self) -> None:
        self.invoices = []
        self.lines = []

    @property
    def is_empty(self) -> bool:
        return not (self.invoices or self.lines)
