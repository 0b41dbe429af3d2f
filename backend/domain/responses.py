"""
Standard API response helpers.

Envelopes:
- Success: { "success": true, "<resource>": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }

Resources are returned under their own key ("order", "delivery",
"notifications", ...) because the web and rider clients read them that way.
"""
from typing import Any
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail structure."""
    code: str = Field(..., description="Error code (e.g., 'notfound', 'validation_error')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    """Standard error response envelope."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail = Field(..., description="Error details")


def error_response(code: str, message: str, details: Any = None) -> dict[str, Any]:
    return StandardErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details)
    ).model_dump()


def success_response(meta: dict[str, Any] | None = None, **payload: Any) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        meta: Optional metadata (pagination, counters, etc.)
        **payload: Resource fields, e.g. order={...}

    Returns:
        dict: { "success": true, **payload, "meta": <meta> }
    """
    response = {"success": True, **payload}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    key: str,
    items: list[Any],
    limit: int,
    offset: int,
    total: int,
    **extra: Any,
) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    Args:
        key: Name of the collection in the envelope ("orders", "notifications")
        items: List of items for this page
        limit: Number of items per page
        offset: Offset of this page
        total: Total number of matching items
        **extra: Additional top-level fields (e.g. unreadCount)

    Returns:
        dict: { "success": true, <key>: <items>, "meta": { "limit", "offset", "total", "hasMore" } }
    """
    meta = {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasMore": (offset + limit) < total,
    }
    return success_response(meta=meta, **{key: items}, **extra)
