"""FastAPI authentication dependencies.

The verified ``sub`` claim is the user id; no user lookup happens here.
"""

from __future__ import annotations

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from signalmap.auth.jwt import verify_token

_bearer = HTTPBearer()
_optional_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> str:
    """Extract and verify the bearer JWT, return its subject. Raises 401 on failure."""
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return str(payload["sub"])


async def get_optional_user_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_optional_bearer),
) -> str | None:
    """Like get_current_user_id, but anonymous requests yield None.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None
    return await get_current_user_id(credentials)
