"""
Service request records returned by the open-data lookup service.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ServiceRequestRecord(BaseModel):
    """A single city service request as published on the open-data portal."""

    request_number: str
    request_type: str
    location: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    agency: str | None = None
    resolution: str | None = None
    details_url: str | None = None


class ServiceRequestFilter(BaseModel):
    """Search filter for requests by location and/or type."""

    location: str | None = None
    request_type: str | None = None
    status: str | None = None
    limit: int = Field(default=5, ge=1, le=100)
