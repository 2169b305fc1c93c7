"""Response models for the inspection API."""

from __future__ import annotations

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Envelope for every non-2xx response."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str
    version: str
    node_name: str
    stages: list[str]
