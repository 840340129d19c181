"""
DocShelf Backend — Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the reindexer, services and repository; caught by global handlers.

Exception Hierarchy:
    DocShelfError (base)
    ├── ValidationError              → 400 Bad Request (client can fix)
    │   └── InvalidReorderRequest    → 400 Bad Request (bad move target)
    ├── NotFoundError                → 404 Not Found
    │   └── PageNotFoundError        → 404 Not Found
    ├── PageAlreadyExistsError       → 409 Conflict
    ├── ReorderInProgressError       → 409 Conflict (partition lock timeout)
    └── StorageError                 → 500 Internal Server Error
        └── PageReorderError         → 500 Internal Server Error (plan aborted)
"""

from typing import Any, Dict, Optional


class DocShelfError(Exception):
    """
    Base exception for all DocShelf application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only selectively returned)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DocShelfError):
    """
    Raised when client input fails a business rule.

    HTTP:    400 Bad Request
    Schema-level validation is left to FastAPI/Pydantic (422).
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidReorderRequest(ValidationError):
    """
    Raised when a reorder cannot be planned.

    When:    The moved page is not among the siblings, or the requested
             position lies outside [0, n-1] for a partition of n pages.
    HTTP:    400 Bad Request

    Raised before any position is computed, so it never has a partial effect.
    """

    def __init__(
        self,
        message: str = "Invalid reorder request",
        page_id: Optional[str] = None,
        requested_position: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if page_id is not None:
            ctx["page_id"] = page_id
        if requested_position is not None:
            ctx["requested_position"] = requested_position
        super().__init__(message=message, field="position", context=ctx)
        self.page_id = page_id
        self.requested_position = requested_position


class NotFoundError(DocShelfError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class PageNotFoundError(NotFoundError):
    """Raised when a page is missing or belongs to another API."""

    def __init__(self, page_id: str, api_id: Optional[str] = None):
        ctx = {"api_id": api_id} if api_id else None
        super().__init__(resource="page", resource_id=page_id, context=ctx)
        self.page_id = page_id


class PageAlreadyExistsError(DocShelfError):
    """
    Raised when a freshly generated page ID is already taken.

    HTTP:    409 Conflict
    """

    def __init__(self, page_id: str):
        super().__init__(
            message=f"page with ID '{page_id}' already exists",
            context={"page_id": page_id},
        )
        self.page_id = page_id


class ReorderInProgressError(DocShelfError):
    """
    Raised when another reorder of the same API holds the partition lock
    for longer than the configured timeout.

    HTTP:    409 Conflict
    """

    def __init__(self, api_id: str, timeout: Optional[float] = None):
        super().__init__(
            message=(
                f"Pages of API '{api_id}' are being reordered by another request. "
                "Retry shortly."
            ),
            context={"api_id": api_id, "timeout": timeout},
        )
        self.api_id = api_id


class StorageError(DocShelfError):
    """
    Raised when a storage operation fails unexpectedly.

    What:    A page query, insert, update or delete failed.
    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic.
        SQL, constraint names and driver messages are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PageReorderError(StorageError):
    """
    Raised when persisting a reorder write plan fails part way.

    Carries the partition, the page whose write failed, and how much of the
    plan had been applied, so an operator can reconcile. The surrounding
    transaction is rolled back; the caller must not assume the moved page
    reached its requested position.
    """

    def __init__(
        self,
        api_id: str,
        page_id: str,
        applied: int = 0,
        abandoned: int = 0,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update(
            {
                "api_id": api_id,
                "page_id": page_id,
                "applied": applied,
                "abandoned": abandoned,
            }
        )
        super().__init__(
            message=(
                f"Reordering pages of API '{api_id}' failed while updating page "
                f"'{page_id}'. No position change was saved."
            ),
            context=ctx,
        )
        self.api_id = api_id
        self.page_id = page_id
        self.applied = applied
        self.abandoned = abandoned
