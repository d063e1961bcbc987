"""
Data Models for API Requests and Responses

Pydantic models for request validation and JSON response serialization
in the finance assist API.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, RootModel


class IngestRequest(RootModel[List[str]]):
    """JSON array of source locators to ingest."""

    root: List[str] = Field(..., description="URLs or paths to ingest")


class SearchQuery(BaseModel):
    """Query parameters of the search endpoint."""

    question: str = Field(..., description="Question to answer")


class HealthResponse(BaseModel):
    """Model for system health check response."""

    status: str = Field(..., description="System status")
    timestamp: int = Field(..., description="Check timestamp")
    version: str = Field(default="1.0.0", description="API version")
    uptime: Optional[float] = Field(default=None, description="System uptime in seconds")
    components: Dict[str, str] = Field(default_factory=dict, description="Component status")
    vector_count: Optional[int] = Field(default=None, description="Records in the vector store")


class ErrorResponse(BaseModel):
    """Model for JSON error responses."""

    success: bool = Field(default=False, description="Always false for errors")
    error: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Type of error")
    message: Optional[str] = Field(default=None, description="Human readable detail")
    timestamp: int = Field(..., description="Error timestamp")
