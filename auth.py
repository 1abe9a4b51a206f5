import os
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from errors import ForbiddenError, UnauthorizedError

# Security/JWT setup
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", "60"))
security = HTTPBearer(auto_error=False)


class Caller(BaseModel):
    """Identity resolved once per request from the bearer token."""
    user_id: str
    email: Optional[str] = None
    is_admin: bool = False


def create_token(user_id: str, email: Optional[str] = None, is_admin: bool = False) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "is_admin": is_admin,
        "exp": datetime.utcnow() + timedelta(minutes=JWT_EXPIRES_MIN),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Caller:
    if credentials is None:
        raise UnauthorizedError("Unauthorized. Please log in.")
    payload = decode_token(credentials.credentials)
    uid = payload.get("sub")
    if not uid:
        raise UnauthorizedError("Invalid token")
    return Caller(user_id=str(uid), email=payload.get("email"), is_admin=bool(payload.get("is_admin", False)))


async def require_admin(user: Caller = Depends(get_current_user)) -> Caller:
    if not user.is_admin:
        raise ForbiddenError("Admin only")
    return user
