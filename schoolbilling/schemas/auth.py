"""Requester identity schemas."""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class RequesterRole(str, Enum):
    """Roles issued by the identity provider."""

    SYSTEM_ADMIN = "system_admin"
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


class Requester(BaseModel):
    """Identity of the caller, taken from a verified bearer token."""

    id: str
    role: str
    school_id: Optional[UUID] = None
    email: Optional[str] = None
    auth_method: str  # "jwt", "system"

    @property
    def is_system_admin(self) -> bool:
        """Whether the caller administers the whole platform."""
        return self.role == RequesterRole.SYSTEM_ADMIN.value

    def administers_school(self, school_id: UUID) -> bool:
        """Whether the caller is an admin scoped to the given school."""
        return self.role == RequesterRole.ADMIN.value and self.school_id == school_id

    def __str__(self) -> str:
        """String representation for logging."""
        return f"Requester(id={self.id}, role={self.role}, school={self.school_id})"
