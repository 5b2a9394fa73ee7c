from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    super_admin = "super_admin"
    admin = "admin"
    teacher = "teacher"


class CurrentUser(BaseModel):
    """The authenticated caller, built from bearer token claims."""

    id: str
    role: UserRole
    teacher_id: str | None = None
    school_id: str | None = None

    model_config = {"frozen": True}

    @property
    def recipient_id(self) -> str:
        return self.teacher_id or self.id
