# jobmatch/core/actor.py
from dataclasses import dataclass

from jobmatch.core.errors import AuthorizationError, ValidationError

ROLES = ("jobseeker", "employer", "admin")


@dataclass(frozen=True)
class AuthenticatedActor:
    """Caller identity handed to every user-facing core operation."""
    id: str
    role: str = "jobseeker"

    def __post_init__(self):
        if not self.id:
            raise ValidationError("actor id is required")
        if self.role not in ROLES:
            raise ValidationError(f"unknown role: {self.role}")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def require_admin(self) -> None:
        if not self.is_admin:
            raise AuthorizationError("admin role required")

    def require_self_or_admin(self, user_id: str) -> None:
        if user_id != self.id and not self.is_admin:
            raise AuthorizationError("can only access your own data")

    def require_role(self, *roles: str) -> None:
        if self.role not in roles and not self.is_admin:
            raise AuthorizationError(f"requires one of: {', '.join(roles)}")
