from datetime import UTC, datetime

from pydantic import BaseModel, Field

from ..core.config import Settings


class RunContext(BaseModel):
    """
    Source and target spreadsheets for one run.

    Passed explicitly to every collaborator so concurrent requests never
    share or overwrite each other's targets.
    """
    source_sheet_id: str
    source_tab: str = "Sheet1"
    source_link_column: str = "Invoices"
    target_sheet_id: str
    invoices_tab: str = "Invoices"
    lines_tab: str = "Invoice Line Items"

    @classmethod
    def from_settings(cls, cfg: Settings, sheet_id: str | None = None) -> "RunContext":
        """
        Build a context from settings.

        A ``sheet_id`` override makes one spreadsheet both source and target,
        which is how per-user sheets are laid out.
        """
        source = sheet_id or cfg.source_sheet_id
        target = sheet_id or cfg.target_sheet_id
        if not source:
            raise ValueError("SOURCE_SHEET_ID is not configured")
        if not target:
            raise ValueError("TARGET_SHEET_ID is not configured")
        return cls(
            source_sheet_id=source,
            source_tab=cfg.source_sheet_tab,
            source_link_column=cfg.source_link_column,
            target_sheet_id=target,
            invoices_tab=cfg.target_invoices_tab,
            lines_tab=cfg.target_line_items_tab,
        )


class RunResult(BaseModel):
    success: bool = True
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    error: str | None = None
    links_seen: int = 0
    files_parsed: int = 0
    files_skipped: int = 0
    invoices_updated: int = 0
    invoices_appended: int = 0
    invoices_rejected: int = 0
    lines_appended: int = 0
    file_errors: dict[str, str] = Field(default_factory=dict)
