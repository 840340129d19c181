"""
DocShelf Backend — Pydantic Request/Response Schemas
======================================================

What:  Pydantic models defining the API contract for pages.
How:   FastAPI uses these models to validate request bodies, serialize responses,
       and generate OpenAPI documentation automatically.
Who:   Used by route handlers as request/return types and by PageService for
       DTO conversion.

Schemas are separate from the SQLAlchemy model: `content_type` is derived,
`created_at` and `api_id` are never client-writable, and `type` can only be
chosen at creation.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from docshelf.models.page import PageType


# ══════════════════════════════════════════════════════════════════════════
# Request Models — What clients send
# ══════════════════════════════════════════════════════════════════════════


class NewPageRequest(BaseModel):
    """
    Body of POST /api/apis/{api_id}/pages.

    position: omitted → appended after the last page of the API.
    """
    name: str = Field(min_length=1, max_length=255, description="Display name")
    type: PageType = Field(default=PageType.MARKDOWN, description="MARKDOWN, RAML or SWAGGER")
    content: Optional[str] = Field(default=None, description="Page body")
    last_contributor: Optional[str] = Field(default=None, max_length=255)
    position: Optional[int] = Field(
        default=None,
        ge=0,
        description="0-based display order. Omit to append at the end.",
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class UpdatePageRequest(BaseModel):
    """
    Body of PUT /api/apis/{api_id}/pages/{page_id}.

    A full replacement of the writable fields. A position different from the
    stored one moves the page and shifts its siblings.
    """
    name: str = Field(min_length=1, max_length=255)
    content: Optional[str] = Field(default=None)
    last_contributor: Optional[str] = Field(default=None, max_length=255)
    position: int = Field(ge=0, description="0-based display order")
    published: bool = Field(default=False)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


# ══════════════════════════════════════════════════════════════════════════
# Response Models — What the API returns
# ══════════════════════════════════════════════════════════════════════════


class PageResponse(BaseModel):
    """Full representation of a page, returned by read, create and update."""
    id: uuid.UUID = Field(description="Unique page identifier")
    api_id: str = Field(description="Owning API")
    name: str
    type: PageType
    content: Optional[str] = None
    content_type: str = Field(description="application/json or text/yaml, sniffed from content")
    last_contributor: Optional[str] = None
    last_modification_date: datetime = Field(description="Last update (UTC ISO 8601)")
    position: int
    published: bool

    model_config = {"from_attributes": True}


class PageListItem(BaseModel):
    """Compact page representation for GET /api/apis/{api_id}/pages."""
    id: uuid.UUID
    name: str
    type: PageType
    position: int
    last_contributor: Optional[str] = None
    published: bool

    model_config = {"from_attributes": True}


class MaxPositionResponse(BaseModel):
    """
    What:  Highest position used by an API's pages.

    max_position is null for an API without pages, so "no pages" and
    "one page at position 0" stay distinguishable. next_position is where
    a page appended now would land.
    """
    api_id: str
    max_position: Optional[int] = None
    next_position: int


class CompactResponse(BaseModel):
    """Result of POST /api/apis/{api_id}/pages/compact."""
    api_id: str
    moved: int = Field(description="Number of pages whose position changed")
    total: int = Field(description="Number of pages in the API")


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "invalid_reorder_request",
            "message": "Position 7 is out of range [0, 3] for API 'petstore'",
            "details": {"field": "position", "requested_position": 7},
            "request_id": "1f0e9a2c"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and database status."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
