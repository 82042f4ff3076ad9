from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from enum import Enum


class ResponseStatus(str, Enum):
    """Response status enumeration"""
    OK = "ok"
    DEGRADED = "degraded"


class DeltaEvent(BaseModel):
    """One incremental piece of the answer"""
    text: str = Field(..., description="Text delta")


class ErrorEvent(BaseModel):
    """Failure reported inside an already-open stream"""
    error: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Non-streamed error body"""
    error: str = Field(..., description="Error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Message is required"
            }
        }


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: ResponseStatus = Field(..., description="Overall status")
    search_index_ok: bool = Field(..., description="Search cluster reachable")
    index: str = Field(..., description="Configured index name")
    model: Optional[Dict[str, Any]] = Field(None, description="Configured model info")
