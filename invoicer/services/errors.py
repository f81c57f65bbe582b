"""
Error taxonomy for the ingestion pipeline.

Transport errors are retried inside the completion client before they
surface. Malformed-output and validation errors are fatal for one document
or chunk. Document and file errors skip one file. Sheet errors end the run.
"""

from dataclasses import dataclass


class InvoicerError(RuntimeError):
    """Base class for all pipeline errors."""


class CompletionTransportError(InvoicerError):
    """Network failure or rate limiting that outlasted the retry budget."""


class CompletionResponseError(InvoicerError):
    """Completion API answered with a non-retryable HTTP status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Completion API error {status_code}: {body}")


class MalformedOutputError(InvoicerError):
    """The model did not return usable JSON, even after the strict retry."""

    def __init__(self, message: str, preview: str = ""):
        self.preview = preview
        super().__init__(message)


@dataclass
class SchemaViolation:
    field: str
    problem: str

    def __str__(self) -> str:
        return f"{self.field}: {self.problem}"


class OutputValidationError(InvoicerError):
    """Parsed JSON does not have the expected invoice / line item shape."""

    def __init__(self, violations: list[SchemaViolation]):
        self.violations = violations
        super().__init__("Validation failed: " + "; ".join(str(v) for v in violations))


class DocumentParseError(InvoicerError):
    """Upload, polling or result retrieval failed for a document."""


class FileSourceError(InvoicerError):
    """A source file could not be located or downloaded."""


class SheetStoreError(InvoicerError):
    """The spreadsheet API failed or refused a request."""


class SheetWriteError(SheetStoreError):
    """A write to the target spreadsheet failed."""
