"""Bearer-token dependencies resolving the caller's user and company scope."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .settings import settings

auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    company_id: Optional[str] = None


def mint_access_token(
    user_id: str,
    company_id: Optional[str] = None,
    ttl_seconds: int = 3600,
    claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign a token the way the account service does. Used by tests and local tooling."""
    now = int(time.time())
    payload: Dict[str, Any] = {
        "userId": user_id,
        "iat": now,
        "exp": now + ttl_seconds,
        **(claims or {}),
    }
    if company_id:
        payload["companyId"] = company_id
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
) -> AuthContext:
    """Resolve the authenticated user from the Bearer token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token is required")

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token") from exc

    user_id = str(payload.get("userId") or payload.get("sub") or "")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")

    return AuthContext(user_id=user_id, company_id=payload.get("companyId") or None)


async def get_staff_context(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Require a company-scoped (staff) token."""
    if not auth.company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return auth
