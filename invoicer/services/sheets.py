"""
Google Sheets access and invoice row reconciliation.

Invoices are upserted by ``invoice_key``: rows whose key already exists are
overwritten in place, everything else is appended. Line items are always
appended.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from loguru import logger

from ..models.invoice import INVOICE_HEADERS, LINE_HEADERS, InvoiceRecord, LineItemRecord
from ..models.run import RunContext
from .errors import SheetStoreError, SheetWriteError

INVOICE_TAB_ALTERNATES = ("Invoices", "Sheet1")
LINE_TAB_ALTERNATES = ("Invoice Line Items", "Sheet2")


def quote_tab(tab: str) -> str:
    return "'" + tab.replace("'", "''") + "'"


def a1(tab: str, cell: str) -> str:
    """A1 range on a tab, e.g. a1("Invoice Line Items", "A1") -> 'Invoice Line Items'!A1."""
    return f"{quote_tab(tab)}!{cell}"


def resolve_tab(existing: list[str], preferred: str, alternates: tuple[str, ...], position: int) -> str:
    """
    Pick the tab to use among the tabs a spreadsheet actually has.

    Order: the preferred name, the first present alternate, the tab at
    ``position``, and finally the preferred name even though it is missing.
    Older spreadsheets were provisioned with default "Sheet1"/"Sheet2" tabs.
    """
    if preferred in existing:
        return preferred
    for name in alternates:
        if name in existing:
            return name
    if len(existing) > position:
        return existing[position]
    return preferred


class SheetStoreBase(ABC):
    """Cell-level spreadsheet operations used by the reconciler."""

    @abstractmethod
    def read_range(self, sheet_id: str, range_: str) -> list[list[str]]:
        """Return the rows in ``range_`` (trailing empty cells/rows omitted)."""

    @abstractmethod
    def update_cells(self, sheet_id: str, range_: str, rows: list[list[str]]) -> None:
        """Overwrite cells starting at ``range_``."""

    @abstractmethod
    def append_rows(self, sheet_id: str, range_: str, rows: list[list[str]]) -> None:
        """Insert ``rows`` after the last row of the table at ``range_``."""

    @abstractmethod
    def batch_update(self, sheet_id: str, data: list[dict]) -> None:
        """Apply several ``{"range": ..., "values": ...}`` writes in one request."""

    @abstractmethod
    def list_tabs(self, sheet_id: str) -> list[str]:
        """Return tab titles in display order."""


class GoogleSheetsStore(SheetStoreBase):
    """SheetStoreBase over the Sheets v4 API. Values are written RAW."""

    def __init__(self, credentials=None, service=None):
        self._service = service or build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def _values(self):
        return self._service.spreadsheets().values()

    def read_range(self, sheet_id: str, range_: str) -> list[list[str]]:
        try:
            result = self._values().get(spreadsheetId=sheet_id, range=range_).execute()
        except HttpError as e:
            raise SheetStoreError(f"Failed to read {range_} from sheet {sheet_id}: {e}") from e
        return result.get("values", [])

    def update_cells(self, sheet_id: str, range_: str, rows: list[list[str]]) -> None:
        try:
            self._values().update(
                spreadsheetId=sheet_id,
                range=range_,
                valueInputOption="RAW",
                body={"values": rows},
            ).execute()
        except HttpError as e:
            raise SheetWriteError(f"Failed to update {range_} in sheet {sheet_id}: {e}") from e

    def append_rows(self, sheet_id: str, range_: str, rows: list[list[str]]) -> None:
        try:
            self._values().append(
                spreadsheetId=sheet_id,
                range=range_,
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": rows},
            ).execute()
        except HttpError as e:
            raise SheetWriteError(f"Failed to append {len(rows)} rows to {range_} in sheet {sheet_id}: {e}") from e

    def batch_update(self, sheet_id: str, data: list[dict]) -> None:
        try:
            self._values().batchUpdate(
                spreadsheetId=sheet_id,
                body={"valueInputOption": "RAW", "data": data},
            ).execute()
        except HttpError as e:
            raise SheetWriteError(f"Batch update of {len(data)} ranges in sheet {sheet_id} failed: {e}") from e

    def list_tabs(self, sheet_id: str) -> list[str]:
        try:
            info = self._service.spreadsheets().get(
                spreadsheetId=sheet_id, fields="sheets.properties.title"
            ).execute()
        except HttpError as e:
            raise SheetStoreError(f"Failed to read tabs of sheet {sheet_id}: {e}") from e
        return [sheet["properties"]["title"] for sheet in info.get("sheets", [])]


@dataclass
class UpsertPlan:
    updates: list[dict] = field(default_factory=list)
    appends: list[list[str]] = field(default_factory=list)


def plan_invoice_upsert(rows: list[list[str]], records: list[InvoiceRecord], tab: str) -> UpsertPlan:
    """
    Split ``records`` into in-place updates and appends against ``rows``.

    ``rows`` is the full current tab including its header row; an empty tab
    uses INVOICE_HEADERS. Records without a key, or whose key has no row yet,
    are appended.
    """
    header = rows[0] if rows and rows[0] else INVOICE_HEADERS
    key_idx = header.index("invoice_key") if "invoice_key" in header else -1

    existing: dict[str, int] = {}
    if key_idx >= 0:
        for row_number, row in enumerate(rows[1:], start=2):
            key = row[key_idx] if key_idx < len(row) else ""
            if key:
                existing[key] = row_number

    plan = UpsertPlan()
    for record in records:
        row = [record.get(column, "") for column in header]
        key = record.get("invoice_key", "")
        row_number = existing.get(key) if key else None
        if row_number:
            plan.updates.append({"range": a1(tab, f"A{row_number}"), "values": [row]})
        else:
            plan.appends.append(row)
    return plan


class SheetReconciler:
    """Writes accumulated invoices and line items to the target spreadsheet."""

    def __init__(self, store: SheetStoreBase, tab_fallback: bool = True):
        self.store = store
        self.tab_fallback = tab_fallback

    def resolve_targets(self, ctx: RunContext) -> RunContext:
        """Return ``ctx`` with tab names matched to the tabs the target sheet really has."""
        if not self.tab_fallback:
            return ctx
        try:
            existing = self.store.list_tabs(ctx.target_sheet_id)
        except SheetStoreError as e:
            logger.warning("Could not list target tabs, using configured names", error=str(e))
            return ctx

        invoices_tab = resolve_tab(existing, ctx.invoices_tab, INVOICE_TAB_ALTERNATES, 0)
        lines_tab = resolve_tab(existing, ctx.lines_tab, LINE_TAB_ALTERNATES, 1)
        if (invoices_tab, lines_tab) != (ctx.invoices_tab, ctx.lines_tab):
            logger.info("Using fallback target tabs", invoices_tab=invoices_tab, lines_tab=lines_tab)
        return ctx.model_copy(update={"invoices_tab": invoices_tab, "lines_tab": lines_tab})

    def _ensure_header_row(self, sheet_id: str, tab: str, headers: list[str]) -> None:
        existing = self.store.read_range(sheet_id, a1(tab, "1:1"))
        if not existing or not existing[0]:
            self.store.update_cells(sheet_id, a1(tab, "1:1"), [headers])
            logger.info("Wrote header row", tab=tab, columns=len(headers))

    def ensure_headers(self, ctx: RunContext) -> None:
        self._ensure_header_row(ctx.target_sheet_id, ctx.invoices_tab, INVOICE_HEADERS)
        if ctx.lines_tab != ctx.invoices_tab:
            self._ensure_header_row(ctx.target_sheet_id, ctx.lines_tab, LINE_HEADERS)

    def read_source_links(self, ctx: RunContext) -> list[str]:
        """Return the non-empty cells under the source link column, in row order."""
        rows = self.store.read_range(ctx.source_sheet_id, quote_tab(ctx.source_tab))
        if not rows:
            return []

        header = [(cell or "").strip() for cell in rows[0]]
        if ctx.source_link_column not in header:
            logger.error(
                "Link column not found in source sheet",
                column=ctx.source_link_column,
                header=header,
            )
            return []

        col = header.index(ctx.source_link_column)
        links = []
        for row in rows[1:]:
            cell = row[col] if col < len(row) else ""
            if isinstance(cell, str) and cell.strip():
                links.append(cell.strip())
        logger.info("Read source links", count=len(links), sheet_id=ctx.source_sheet_id)
        return links

    def upsert_invoices(self, ctx: RunContext, records: list[InvoiceRecord]) -> UpsertPlan:
        """Update existing invoice rows by key and append the rest: one batch update, then one append."""
        if not records:
            return UpsertPlan()

        tab = ctx.invoices_tab
        rows = self.store.read_range(ctx.target_sheet_id, quote_tab(tab))
        plan = plan_invoice_upsert(rows, records, tab)

        if plan.updates:
            self.store.batch_update(ctx.target_sheet_id, plan.updates)
        if plan.appends:
            self.store.append_rows(ctx.target_sheet_id, a1(tab, "A1"), plan.appends)

        logger.info("Reconciled invoices", tab=tab, updated=len(plan.updates), appended=len(plan.appends))
        return plan

    def append_line_items(self, ctx: RunContext, records: list[LineItemRecord]) -> int:
        if not records:
            return 0
        rows = [[record.get(column, "") for column in LINE_HEADERS] for record in records]
        self.store.append_rows(ctx.target_sheet_id, a1(ctx.lines_tab, "A1"), rows)
        logger.info("Appended line items", tab=ctx.lines_tab, count=len(rows))
        return len(rows)
