"""Pydantic response models for the web API."""

from typing import Optional

from pydantic import BaseModel


class RefreshResponse(BaseModel):
    """Summary of an authoritative cache refresh."""

    success: bool
    itemsCount: Optional[int] = None
    error: Optional[str] = None
    sources: list[str] = []
    timestamp: str


class ErrorDetail(BaseModel):
    message: str
    stack: str = ""


class ErrorRecord(BaseModel):
    """Public view of a recorded failure notice."""

    site: Optional[str] = None
    context: Optional[str] = None
    timestamp: Optional[str] = None
    pacificTime: Optional[str] = None
    error: Optional[ErrorDetail] = None


class FailureResponse(BaseModel):
    """Body of a 500 from the feed endpoint."""

    error: str
    message: str
    stack: str
    debug: str


class HealthResponse(BaseModel):
    status: str
    version: str
