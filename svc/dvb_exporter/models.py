from __future__ import annotations
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status (always 'ok' if service is running)")
    devices: int = Field(description="Number of frontends registered at startup")


class DeviceInfo(BaseModel):
    """One registered DVB frontend."""
    adapter: int = Field(ge=0, description="Adapter number (label 'adapter')")
    frontend: int = Field(ge=0, description="Frontend number within the adapter (label 'frontend')")
    path: str = Field(description="Device node the frontend was opened from")


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str = Field(description="Error message describing what went wrong")
