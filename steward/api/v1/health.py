"""Liveness and user-store reachability; public, no token required."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from steward.core.config import Settings, get_settings
from steward.core.database import check_db_connected, get_db
from steward.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """Logins cannot succeed while the database is disconnected; status reports 'degraded' then."""
    connected = check_db_connected(db)
    return HealthResponse(
        status="ok" if connected else "degraded",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        database="connected" if connected else "disconnected",
    )
