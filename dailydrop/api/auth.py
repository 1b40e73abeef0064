"""
Request identity for the DailyDrop API.

The API sits behind a gateway that authenticates the user and forwards the
user id in the X-User-Id header.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status


@dataclass
class AuthenticatedUser:
    id: str

    def __str__(self) -> str:
        return f"User({self.id})"


async def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> AuthenticatedUser:
    """
    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return AuthenticatedUser(id=x_user_id.strip())
