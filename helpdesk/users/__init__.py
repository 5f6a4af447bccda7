"""Client and agent accounts."""

from .models import AuthSession, Role, User

__all__ = ["AuthSession", "Role", "User"]
