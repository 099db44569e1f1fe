# ABOUTME: The identity of the caller as handed to the service layer.
# ABOUTME: Authentication happens elsewhere; services only check role and ownership.

from dataclasses import dataclass
from enum import StrEnum

from lendery.errors import ForbiddenError


class Role(StrEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


@dataclass(frozen=True)
class Viewer:
    """The caller of a service operation. user_id None means anonymous."""

    user_id: str | None = None
    role: Role = Role.MEMBER

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls()

    @classmethod
    def admin(cls, user_id: str) -> "Viewer":
        return cls(user_id=user_id, role=Role.ADMIN)

    @classmethod
    def member(cls, user_id: str) -> "Viewer":
        return cls(user_id=user_id, role=Role.MEMBER)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_admin(self) -> bool:
        return self.user_id is not None and self.role == Role.ADMIN

    def require_user(self) -> str:
        """Return the caller's id or raise ForbiddenError for anonymous callers."""
        if self.user_id is None:
            raise ForbiddenError("Authentication required")
        return self.user_id

    def require_admin(self) -> str:
        user_id = self.require_user()
        if self.role != Role.ADMIN:
            raise ForbiddenError("Administrator role required")
        return user_id
