"""Pydantic models for web API responses."""

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Current state of the door dialer."""

    location_id: str
    busy: bool = Field(description="Whether an admission cycle is in progress")
    modem_state: str
    cached_authorizations: int = Field(ge=0)
