from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from weekweave.core.security import decode_token
from weekweave.db.session import SessionLocal
from weekweave.schemas.auth import CurrentUser, UserRole

security = HTTPBearer()

ADMIN_ROLES = (UserRole.super_admin, UserRole.admin)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def user_from_token(token: str) -> CurrentUser:
    payload = decode_token(token)
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    try:
        return CurrentUser(
            id=subject,
            role=payload.get("role"),
            teacher_id=payload.get("teacher_id"),
            school_id=payload.get("school_id"),
        )
    except ValidationError as exc:
        raise JWTError("Token claims are malformed") from exc


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    try:
        return user_from_token(credentials.credentials)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_roles(*roles: UserRole) -> Callable[[CurrentUser], CurrentUser]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


require_admin = require_roles(*ADMIN_ROLES)
