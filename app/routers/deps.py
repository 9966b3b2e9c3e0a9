"""
Shared router dependencies.

Authentication lives outside this service; the gateway forwards the
authenticated user's id in the X-User-Id header.
"""
from fastapi import Header

from app.core.errors import ValidationError


def current_user_id(
    x_user_id: str = Header(
        default="",
        description="Authenticated user id, set by the auth gateway.",
        examples=["user-123"],
    ),
) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise ValidationError("X-User-Id header is required", field="X-User-Id")
    return user_id
