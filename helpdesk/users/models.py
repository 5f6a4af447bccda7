from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Supported roles."""

    CLIENT = "client"
    AGENT = "agent"


@dataclass(slots=True)
class User:
    """Account of a client or an agent. Never carries the password hash."""

    id: str
    username: str
    email: str
    name: str
    role: Role
    created_at: datetime
    updated_at: datetime

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT


@dataclass(slots=True)
class AuthSession:
    """Identity returned after registration or login."""

    user: User
    token: str
