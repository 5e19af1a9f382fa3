"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from catalog.models import Book


class BookDeleteResponse(BaseModel):
    """Response model for a deleted book."""
    message: str = Field("Book deleted successfully", description="Outcome message")
    deleted_book: Book = Field(..., alias="deletedBook", description="The record that was removed")

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    errors: Optional[List[str]] = Field(None, description="Field validation messages")
    error: Optional[str] = Field(None, description="Additional error details (debug mode only)")
    path: Optional[str] = Field(None, description="Requested path, for unknown routes")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Human readable status")
    timestamp: datetime = Field(..., description="Current timestamp")
    database: str = Field(..., description="Database connection status")


class BookEndpoints(BaseModel):
    """Book routes listed by the API index."""
    get_all: str = Field("GET /books", alias="getAll")
    get_one: str = Field("GET /books/:id", alias="getOne")
    create: str = "POST /books"
    update: str = "PUT /books/:id"
    delete: str = "DELETE /books/:id"
    search: str = "GET /books/search/:query"

    class Config:
        populate_by_name = True


class EndpointIndex(BaseModel):
    health: str = "GET /health"
    books: BookEndpoints = Field(default_factory=BookEndpoints)


class APIIndexResponse(BaseModel):
    """Root endpoint response describing the available routes."""
    message: str = Field(..., description="Welcome message")
    version: str = Field(..., description="API version")
    endpoints: EndpointIndex = Field(default_factory=EndpointIndex)


def error_body(
    message: str,
    errors: Optional[List[str]] = None,
    error: Optional[str] = None,
    path: Optional[str] = None
) -> Dict:
    """Serialize an ErrorResponse, leaving out unset keys."""
    return ErrorResponse(message=message, errors=errors, error=error, path=path).model_dump(exclude_none=True)
