"""
Health check endpoint.
"""
from fastapi import APIRouter
from datetime import datetime
import logging

from app.config import settings
from app.models.schemas import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check():
    """
    Health check endpoint to verify system status.

    The service has no backing store; it reports which model is configured
    and whether a server-side API key exists (clients may still send their own).

    Returns:
        HealthCheckResponse with configuration status
    """
    server_credential = bool(settings.GEMINI_API_KEY.strip())
    if not server_credential:
        logger.debug("No server-side GEMINI_API_KEY; requests must carry X-Api-Key")

    return HealthCheckResponse(
        status="healthy",
        gemini_model=settings.GEMINI_MODEL,
        server_credential=server_credential,
        timestamp=datetime.utcnow()
    )
