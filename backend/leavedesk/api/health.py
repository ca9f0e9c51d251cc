import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from leavedesk.clock import TodayDep
from leavedesk.config import get_settings
from leavedesk.db import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service status plus the calendar date every leave rule is evaluated against."""

    status: Literal["ok", "degraded"]
    version: str
    environment: str
    today: str


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep, today: TodayDep) -> HealthResponse:
    settings = get_settings()
    status: Literal["ok", "degraded"] = "ok"

    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database connectivity failed")
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
        today=today.isoformat(),
    )
