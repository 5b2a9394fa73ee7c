from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from weekweave.core.config import get_settings


def create_access_token(
    subject: str,
    *,
    role: str,
    teacher_id: str | None = None,
    school_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a bearer token carrying the claims the API authorizes against.

    Accounts live with the external identity collaborator; this helper exists so that
    collaborator (and the test-suite) can mint tokens with the expected claim layout.
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims: dict[str, Any] = {"sub": subject, "role": role, "exp": expire}
    if teacher_id:
        claims["teacher_id"] = teacher_id
    if school_id:
        claims["school_id"] = school_id
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
