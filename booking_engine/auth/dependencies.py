from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_engine.auth import jwt_handler

security = HTTPBearer()


@dataclass(frozen=True)
class Caller:
    """Identity asserted by the external auth service's bearer token."""

    user_id: str
    tenant_id: str | None = None
    role: str | None = None
    email: str | None = None


def caller_from_token(token: str) -> Caller:
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    return Caller(
        user_id=str(subject),
        tenant_id=payload.get("tenant_id"),
        role=payload.get("role"),
        email=payload.get("email"),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    return caller_from_token(credentials.credentials)
