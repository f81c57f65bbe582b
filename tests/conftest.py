"""
Pytest configuration and shared fakes.

Registers the integration marker and provides in-memory stand-ins for the
spreadsheet, Drive, LlamaParse and completion API collaborators.
"""

import json

import pytest

from invoicer.models.run import RunContext
from invoicer.services.archive import SourceFile
from invoicer.services.errors import DocumentParseError, FileSourceError, SheetWriteError
from invoicer.services.sheets import SheetStoreBase


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Google, LlamaParse and Groq APIs"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real API credentials"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeSheetStore(SheetStoreBase):
    """
    Spreadsheet held in memory as ``{sheet_id: {tab: rows}}``.

    Understands the ranges the reconciler produces: a bare quoted tab, the
    header row ("1:1") and a single row anchor ("A7").
    """

    def __init__(self, sheets: dict | None = None):
        self.sheets = sheets if sheets is not None else {}
        self.calls: list[tuple] = []
        self.fail_writes = False

    def _locate(self, sheet_id: str, range_: str) -> tuple[list[list[str]], str]:
        if "!" in range_:
            tab, cell = range_.rsplit("!", 1)
        else:
            tab, cell = range_, ""
        tab = tab[1:-1].replace("''", "'") if tab.startswith("'") else tab
        rows = self.sheets.setdefault(sheet_id, {}).setdefault(tab, [])
        return rows, cell

    def _check_write(self):
        if self.fail_writes:
            raise SheetWriteError("quota exceeded")

    def read_range(self, sheet_id, range_):
        self.calls.append(("read", range_))
        rows, cell = self._locate(sheet_id, range_)
        if cell == "1:1":
            return [list(rows[0])] if rows and rows[0] else []
        return [list(row) for row in rows]

    def update_cells(self, sheet_id, range_, rows):
        self.calls.append(("update", range_))
        self._check_write()
        target, cell = self._locate(sheet_id, range_)
        start = 0 if cell == "1:1" else int(cell.lstrip("A")) - 1
        for offset, row in enumerate(rows):
            index = start + offset
            while len(target) <= index:
                target.append([])
            target[index] = list(row)

    def append_rows(self, sheet_id, range_, rows):
        self.calls.append(("append", range_))
        self._check_write()
        target, _ = self._locate(sheet_id, range_)
        target.extend(list(row) for row in rows)

    def batch_update(self, sheet_id, data):
        self.calls.append(("batch_update", len(data)))
        self._check_write()
        for entry in data:
            target, cell = self._locate(sheet_id, entry["range"])
            index = int(cell.lstrip("A")) - 1
            target[index] = list(entry["values"][0])

    def list_tabs(self, sheet_id):
        return list(self.sheets.get(sheet_id, {}).keys())

    def tab(self, sheet_id, name):
        return self.sheets.get(sheet_id, {}).get(name, [])


class FakeFileSource:
    def __init__(self, files: dict[str, SourceFile] | None = None):
        self.files = files or {}
        self.downloaded: list[str] = []

    def download(self, file_id):
        self.downloaded.append(file_id)
        if file_id not in self.files:
            raise FileSourceError(f"Failed to download Drive file {file_id}: 404")
        return self.files[file_id]


class FakeParser:
    """Maps filename to markdown; a missing filename fails like a LlamaParse job error."""

    def __init__(self, markdown_by_filename: dict[str, str] | None = None):
        self.markdown_by_filename = markdown_by_filename or {}
        self.parsed: list[str] = []

    def parse(self, content, filename):
        self.parsed.append(filename)
        if filename not in self.markdown_by_filename:
            raise DocumentParseError(f"Parse job for {filename} failed")
        return self.markdown_by_filename[filename]


class FakeCompletionClient:
    """
    Completion client returning canned replies.

    ``replies`` are consumed in order; when exhausted, ``responder`` (if set)
    is called with the user prompt.
    """

    def __init__(self, replies: list[str] | None = None, responder=None):
        self.replies = list(replies or [])
        self.responder = responder
        self.calls: list[tuple[str, str]] = []

    def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.replies:
            return self.replies.pop(0)
        if self.responder is None:
            raise AssertionError("unexpected completion call")
        return self.responder(user_prompt)


def prompt_markdowns(user_prompt: str) -> list[str]:
    """The markdown(s) embedded in a normalizer prompt."""
    payload = json.JSONDecoder().raw_decode(user_prompt.split("Input JSON:\n", 1)[1])[0]
    markdown = payload["markdown"]
    return markdown if isinstance(markdown, list) else [markdown]


def make_output(number: str, gstin: str = "29ABCDE1234F1Z5", total: str = "1180.00",
                lines: int = 1, key: str | None = None) -> dict:
    """A valid normalized ``{invoice, line_items}`` object."""
    invoice_key = f"{gstin}|{number}" if key is None else key
    return {
        "invoice": {
            "invoice_key": invoice_key,
            "supplier_name": "Acme Supplies",
            "supplier_gstin": gstin,
            "buyer_name": "Globex",
            "buyer_gstin": "27XYZAB9876C1Z2",
            "invoice_number": number,
            "invoice_date": "2024-12-05",
            "taxable_value": "1000.00",
            "cgst_amount": "90.00",
            "sgst_amount": "90.00",
            "invoice_total": total,
        },
        "line_items": [
            {
                "invoice_key": invoice_key,
                "invoice_number": number,
                "description": f"Item {n}",
                "line_no": n,
                "line_amount": f"{1000 / lines:.2f}",
            }
            for n in range(1, lines + 1)
        ],
    }


@pytest.fixture
def ctx():
    return RunContext(source_sheet_id="src-sheet", target_sheet_id="dst-sheet")


@pytest.fixture
def sheet_store():
    return FakeSheetStore()
