from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from shareportal.models.access_code import AccessCode
    from shareportal.models.user import UserAccount


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    ANONYMOUS = "anonymous"


ACCOUNT_ROLES = (Role.ADMIN, Role.USER)


class PrincipalKind(str, enum.Enum):
    USER = "user"
    ACCESS_CODE = "access_code"
    ANONYMOUS = "anonymous"


class OwnedResource(Protocol):
    owner_user_id: uuid.UUID | None
    owner_code_id: uuid.UUID | None


@dataclass(frozen=True)
class Principal:
    """The entity behind a request: a user account, an access code or nobody."""

    kind: PrincipalKind
    role: Role
    id: uuid.UUID | None = None
    label: str = "anonymous"

    @classmethod
    def from_user(cls, user: "UserAccount") -> "Principal":
        return cls(kind=PrincipalKind.USER, role=user.role, id=user.id, label=user.username)

    @classmethod
    def from_access_code(cls, code: "AccessCode") -> "Principal":
        # Access codes act with user-level file permissions, never more.
        return cls(kind=PrincipalKind.ACCESS_CODE, role=Role.USER, id=code.id, label=f"code:{code.id}")

    @property
    def is_anonymous(self) -> bool:
        return self.kind is PrincipalKind.ANONYMOUS

    def owns(self, resource: OwnedResource) -> bool:
        if self.id is None:
            return False
        if self.kind is PrincipalKind.USER:
            return resource.owner_user_id == self.id
        if self.kind is PrincipalKind.ACCESS_CODE:
            return resource.owner_code_id == self.id
        return False

    def owner_columns(self) -> dict[str, uuid.UUID | None]:
        """Ownership values for records created by this principal."""
        return {
            "owner_user_id": self.id if self.kind is PrincipalKind.USER else None,
            "owner_code_id": self.id if self.kind is PrincipalKind.ACCESS_CODE else None,
        }


ANONYMOUS = Principal(kind=PrincipalKind.ANONYMOUS, role=Role.ANONYMOUS)
