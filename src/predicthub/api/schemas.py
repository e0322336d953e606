"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    error: str = Field(..., description="Short error label")
    message: str | None = Field(None, description="Human-readable detail")


# --- Health ---
class UpstreamStatus(BaseModel):
    status: str
    ok: bool
    error: str | None = None
    last_update: datetime


class HealthResponse(BaseModel):
    timestamp: str
    apis: dict[str, UpstreamStatus]


# --- Client config ---
class ClientConfigResponse(BaseModel):
    platforms: list[str]
    wallet_connect_project_id: str | None = Field(None, serialization_alias="walletConnectProjectId")


# --- LimitlessLabs auth ---
class LimitlessAuthRequest(BaseModel):
    address: str
    signature: str
    message: str


class SigningMessageResponse(BaseModel):
    message: str


MarketJSON = dict[str, Any]
