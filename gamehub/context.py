from dataclasses import dataclass

from gamehub.errors import AuthorizationError


@dataclass(frozen=True)
class UserContext:
    """Identity of the user performing an action, passed to services explicitly."""
    user_id: int
    username: str
    email: str = ""

    def require_owner(self, owner_id, what: str = "record"):
        if owner_id != self.user_id:
            raise AuthorizationError(f"Only the author can modify this {what}")
