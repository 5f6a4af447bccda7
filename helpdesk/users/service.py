from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Sequence

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from helpdesk.core.config import Settings
from helpdesk.core.security import create_access_token, decode_access_token, hash_password, verify_password
from helpdesk.errors import Conflict, Unauthenticated, ValidationError

from .models import AuthSession, Role, User
from .repository import UserRepository

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


class UserService:
    """Registration, login and lookups for helpdesk accounts."""

    def __init__(self, repository: UserRepository, *, settings: Settings | None = None) -> None:
        self._repository = repository
        self._settings = settings

    async def register(
        self,
        *,
        username: str,
        email: str,
        password: str,
        name: str,
        role: Role | str = Role.CLIENT,
    ) -> AuthSession:
        username = username.strip()
        email = email.strip().lower()
        name = name.strip()
        if len(username) < 3:
            raise ValidationError("Username must be at least 3 characters", field="username")
        try:
            email = _email_adapter.validate_python(email).lower()
        except PydanticValidationError as exc:
            raise ValidationError("Invalid email address", field="email") from exc
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters", field="password")
        if len(name) < 2:
            raise ValidationError("Name must be at least 2 characters", field="name")
        try:
            user_role = Role(role)
        except ValueError as exc:
            raise ValidationError("Role must be client or agent", field="role") from exc

        if await self._repository.identity_taken(username=username, email=email):
            raise Conflict("User with this email or username already exists")

        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            name=name,
            role=user_role,
            created_at=now,
            updated_at=now,
        )
        hashed = await asyncio.to_thread(hash_password, password)
        await self._repository.create_user(user, hashed_password=hashed)
        logger.info("Registered %s account %s", user.role.value, user.id)
        return AuthSession(user=user, token=self._issue_token(user))

    async def login(self, *, email: str, password: str) -> AuthSession:
        record = await self._repository.get_credentials(email.strip().lower())
        if record is None:
            raise Unauthenticated("Invalid credentials")
        user, hashed = record
        if not await asyncio.to_thread(verify_password, password, hashed):
            raise Unauthenticated("Invalid credentials")
        return AuthSession(user=user, token=self._issue_token(user))

    async def resolve_token(self, token: str) -> User:
        user_id = decode_access_token(token, settings=self._settings)
        user = await self._repository.get_user(user_id)
        if user is None:
            raise Unauthenticated("User not found")
        return user

    async def list_agents(self) -> Sequence[User]:
        return await self._repository.list_by_role(Role.AGENT)

    def _issue_token(self, user: User) -> str:
        return create_access_token(user.id, user.role.value, settings=self._settings)
