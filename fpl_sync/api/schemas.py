"""Pydantic v2 request/response models for the API."""

from typing import Any

from pydantic import BaseModel, Field


# --- Envelopes ---

class DataResponse(BaseModel):
    data: Any
    count: int | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


# --- Sync ---

class SyncRequest(BaseModel):
    """Body of POST /{entity}/sync. Scopes are validated per entity kind."""

    scope: int | str | None = Field(default=None, description="Event id, tournament id or ISO date")
    secondary_scope: int | None = Field(default=None, gt=0, description="Tournament id")


class JobHandleResponse(BaseModel):
    id: str
    kind: str
    deduplicated: bool
    status: str | None


class JobAccepted(BaseModel):
    data: JobHandleResponse


# --- Health ---

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    timestamp: str
    season: str
    checks: dict[str, Any]
