import secrets

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger

from ..deps import RunRequest, get_normalizer, get_runner
from ...core.config import settings
from ...models.invoice import NormalizedInvoice, NormalizeRequest
from ...models.run import RunContext, RunResult
from ...services.errors import (
    CompletionResponseError,
    CompletionTransportError,
    MalformedOutputError,
    OutputValidationError,
)
from ...services.normalizer import InvoiceNormalizer
from ...services.orchestrator import InvoiceRunner

router = APIRouter(tags=["runs"])


def _check_cron_secret(authorization: str | None) -> None:
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("Rejected run trigger with missing or invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/runs", response_model=RunResult)
def trigger_run(
    req: RunRequest | None = None,
    authorization: str | None = Header(default=None),
    runner: InvoiceRunner = Depends(get_runner),
):
    """
    Run one pass over the source sheet and write results to the target sheet.

    Scheduled callers authenticate with ``Authorization: Bearer <CRON_SECRET>``
    when CRON_SECRET is configured. A ``sheet_id`` in the body processes that
    spreadsheet as both source and target.
    """
    _check_cron_secret(authorization)

    try:
        ctx = RunContext.from_settings(settings, sheet_id=req.sheet_id if req else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = runner.run_once(ctx)
    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump())
    return result


@router.post("/normalize", response_model=list[NormalizedInvoice])
def normalize(req: NormalizeRequest, normalizer: InvoiceNormalizer = Depends(get_normalizer)):
    """
    Normalize invoice markdown into ``{invoice, line_items}`` objects.

    Accepts a single ``markdown`` string or a ``markdowns`` list; the response
    is always a list in input order.
    """
    if req.markdowns:
        markdowns = req.markdowns
    elif req.markdown:
        markdowns = [req.markdown]
    else:
        raise HTTPException(status_code=422, detail="Provide 'markdown' or 'markdowns'")

    try:
        if len(markdowns) == 1:
            outputs = [normalizer.normalize(markdowns[0])]
        else:
            outputs = normalizer.normalize_batch(markdowns)
    except OutputValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": "Validation failed", "violations": [str(v) for v in e.violations]},
        )
    except MalformedOutputError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "preview": e.preview})
    except (CompletionTransportError, CompletionResponseError) as e:
        logger.error("Completion API unavailable", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    return outputs
