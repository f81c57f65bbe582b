from functools import lru_cache

from fastapi import HTTPException
from pydantic import BaseModel

from ..core.config import settings
from ..services.errors import InvoicerError
from ..services.normalizer import InvoiceNormalizer
from ..services.orchestrator import InvoiceRunner


class RunRequest(BaseModel):
    sheet_id: str | None = None  # Used as both source and target when set


class HealthResponse(BaseModel):
    status: str
    timestamp: str


@lru_cache
def _runner() -> InvoiceRunner:
    return InvoiceRunner.from_settings(settings)


@lru_cache
def _normalizer() -> InvoiceNormalizer:
    return InvoiceNormalizer.from_settings(settings)


def get_runner() -> InvoiceRunner:
    try:
        return _runner()
    except InvoicerError as e:
        raise HTTPException(status_code=503, detail=f"Pipeline is not configured: {e}")


def get_normalizer() -> InvoiceNormalizer:
    try:
        return _normalizer()
    except InvoicerError as e:
        raise HTTPException(status_code=503, detail=f"Completion API is not configured: {e}")
