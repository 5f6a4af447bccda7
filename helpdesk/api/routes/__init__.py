"""Route modules exposed by the API package."""

from . import auth, health, tickets, users

__all__ = ["auth", "health", "tickets", "users"]
