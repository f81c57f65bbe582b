from datetime import UTC, datetime

from fastapi import APIRouter

from ..deps import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", timestamp=datetime.now(UTC).isoformat())
