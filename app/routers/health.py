"""
Liveness endpoint. Public; touches neither the database nor Stripe.
"""

from fastapi import APIRouter

from app.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s
from app.models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health():
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=APP_VERSION,
        uptime_s=round(get_uptime_s(), 1),
    )
