"""
Error envelope schemas, used to document non-2xx responses in OpenAPI.

Every handler in app.core.errors answers with this shape:
  {"code": "WALK_NOT_FOUND", "message": "...", "details": {...}}
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    code: str = Field(description="Machine-readable error code.", examples=["WALK_NOT_FOUND"])
    message: str
    details: Optional[dict[str, Any]] = None


def error_responses(descriptions: dict[int, str]) -> dict[int, dict[str, Any]]:
    """
    Build a FastAPI `responses=` mapping whose entries all use ErrorResponse.

        error_responses({404: "Walk not found."})
    """
    return {
        code: {"model": ErrorResponse, "description": text}
        for code, text in descriptions.items()
    }
