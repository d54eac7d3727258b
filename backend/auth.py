"""Request-scoped user identity.

Authentication itself is done upstream (identity provider / gateway); it
forwards the stable user identifier in the X-User-Id header. Nothing here
trusts an empty identifier.
"""
from typing import Optional

from fastapi import Header, HTTPException, status


class AuthError(HTTPException):
    def __init__(self, detail: str, code: int = status.HTTP_401_UNAUTHORIZED) -> None:
        super().__init__(status_code=code, detail=detail)


def get_current_user(
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Return the authenticated user's identifier."""
    if not user_id or not user_id.strip():
        raise AuthError("Missing X-User-Id header.")
    return user_id.strip()
