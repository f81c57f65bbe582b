from datetime import UTC, datetime

from loguru import logger

from ..core.config import Settings, settings
from ..models.invoice import ensure_invoice_key, is_complete_key, to_string_record
from ..models.run import RunContext, RunResult
from .accumulator import Accumulator
from .archive import expand_source_file
from .drive import DriveFileSource, extract_drive_file_id
from .errors import DocumentParseError, InvoicerError, SheetStoreError
from .google_auth import get_google_credentials
from .llamaparse import DocumentParser
from .normalizer import InvoiceNormalizer
from .sheets import GoogleSheetsStore, SheetReconciler
from .storage import ProcessedFileTrackerBase, SQLiteProcessedFileTracker
from .totals import check_invoice_totals, parse_amount


def _line_order(line: dict) -> tuple:
    number = parse_amount(line.get("line_no"))
    return (0, number) if number is not None else (1, 0.0)


class InvoiceRunner:
    """
    One end-to-end pass: source links → files → markdown → LLM → sheet.

    Everything runs sequentially. A failing file or link is logged and
    skipped; only spreadsheet errors abort the run.
    """

    def __init__(
        self,
        reconciler: SheetReconciler,
        files: DriveFileSource,
        parser: DocumentParser,
        normalizer: InvoiceNormalizer,
        tracker: ProcessedFileTrackerBase | None = None,
        check_totals: bool = True,
        totals_tolerance: float = 0.10,
    ):
        self.reconciler = reconciler
        self.files = files
        self.parser = parser
        self.normalizer = normalizer
        self.tracker = tracker
        self.check_totals = check_totals
        self.totals_tolerance = totals_tolerance

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "InvoiceRunner":
        credentials = get_google_credentials(cfg)
        return cls(
            reconciler=SheetReconciler(GoogleSheetsStore(credentials=credentials), tab_fallback=cfg.sheet_tab_fallback),
            files=DriveFileSource(credentials=credentials),
            parser=DocumentParser.from_settings(cfg),
            normalizer=InvoiceNormalizer.from_settings(cfg),
            tracker=SQLiteProcessedFileTracker(cfg.processed_files_db),
            check_totals=cfg.check_totals,
            totals_tolerance=cfg.totals_tolerance,
        )

    def run_once(self, ctx: RunContext) -> RunResult:
        """Run one pass and report the outcome; fatal errors end up in ``result.error``."""
        result = RunResult()
        logger.info("Invoice run started", source_sheet=ctx.source_sheet_id, target_sheet=ctx.target_sheet_id)
        try:
            self._run(ctx, result)
        except Exception as e:
            logger.exception("Invoice run failed")
            result.success = False
            result.error = str(e)
        result.timestamp = datetime.now(UTC).isoformat()
        logger.info("Invoice run finished", **result.model_dump(exclude={"file_errors", "timestamp"}))
        return result

    def _run(self, ctx: RunContext, result: RunResult) -> None:
        ctx = self.reconciler.resolve_targets(ctx)
        self.reconciler.ensure_headers(ctx)
        links = self.reconciler.read_source_links(ctx)

        acc = Accumulator()
        done: list[str] = []

        for link in links:
            result.links_seen += 1
            file_id = extract_drive_file_id(link)
            if not file_id:
                logger.warning("Skipping link that is not a Drive file", link=link)
                continue

            if self.tracker and self.tracker.is_processed(file_id, ctx.target_sheet_id):
                logger.info("Skipping already processed file", file_id=file_id)
                continue
            if self.tracker:
                self.tracker.mark_processing(file_id, "", link, ctx.target_sheet_id)

            try:
                outputs = self._process_file(file_id, result)
            except InvoicerError as e:
                logger.error("Skipping file", file_id=file_id, error=str(e))
                result.file_errors[file_id] = str(e)
                result.files_skipped += 1
                if self.tracker:
                    self.tracker.mark_failed(file_id, ctx.target_sheet_id, str(e))
                continue

            if outputs is None:
                error = "no document could be parsed"
                result.file_errors.setdefault(file_id, error)
                if self.tracker:
                    self.tracker.mark_failed(file_id, ctx.target_sheet_id, error)
                continue

            self._accumulate(outputs, acc, result)
            done.append(file_id)

        if not acc.is_empty:
            try:
                plan = self.reconciler.upsert_invoices(ctx, acc.invoices)
                result.invoices_updated = len(plan.updates)
                result.invoices_appended = len(plan.appends)
                result.lines_appended = self.reconciler.append_line_items(ctx, acc.lines)
            except SheetStoreError as e:
                if self.tracker:
                    for file_id in done:
                        self.tracker.mark_failed(file_id, ctx.target_sheet_id, str(e))
                raise

        if self.tracker:
            for file_id in done:
                self.tracker.mark_completed(file_id, ctx.target_sheet_id)

    def _process_file(self, file_id: str, result: RunResult) -> list[dict] | None:
        """
        Download one source file, parse every document in it and normalize them in one batch.

        Returns None when no document produced markdown; those documents are
        already counted as skipped.
        """
        source = self.files.download(file_id)

        markdowns = []
        for document in expand_source_file(source):
            try:
                markdown = self.parser.parse(document.content, document.filename)
            except DocumentParseError as e:
                logger.error("Document parsing failed", file_id=file_id, filename=document.filename, error=str(e))
                result.file_errors[f"{file_id}/{document.filename}"] = str(e)
                result.files_skipped += 1
                continue
            if not markdown.strip():
                logger.warning("Parser returned empty markdown", file_id=file_id, filename=document.filename)
                result.files_skipped += 1
                continue
            markdowns.append(markdown)
            result.files_parsed += 1

        if not markdowns:
            return None
        return self.normalizer.normalize_batch(markdowns)

    def _accumulate(self, outputs: list[dict], acc: Accumulator, result: RunResult) -> None:
        for output in outputs:
            invoice = to_string_record(output.get("invoice"))
            lines = [to_string_record(item) for item in output.get("line_items") or []]

            key = ensure_invoice_key(invoice)
            if not key:
                # Keyless invoices cannot be matched to an existing row
                logger.warning(
                    "Rejecting invoice without invoice_key",
                    invoice_number=invoice.get("invoice_number", ""),
                    supplier_name=invoice.get("supplier_name", ""),
                    lines=len(lines),
                )
                result.invoices_rejected += 1
                continue

            for line in lines:
                if not is_complete_key(line.get("invoice_key", "")):
                    line["invoice_key"] = key
            lines.sort(key=_line_order)

            if self.check_totals:
                check_invoice_totals(invoice, lines, self.totals_tolerance)

            acc.add_invoice(invoice)
            acc.add_lines(lines)
