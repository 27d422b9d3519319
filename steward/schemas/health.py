"""Health payload for the unauthenticated /health route."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = Field(
        default="ok", description="'degraded' when the user store cannot be reached"
    )
    app_name: str = Field(description="Service name, also the issuer shown in authenticator apps")
    environment: Literal["dev", "prod"]
    database: Literal["connected", "disconnected"]
