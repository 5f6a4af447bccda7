from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.dependencies.services import get_user_service
from helpdesk.errors import Forbidden, Unauthenticated
from helpdesk.users.models import Role, User
from helpdesk.users.service import UserService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
    users: Annotated[UserService, Depends(get_user_service)],
) -> User:
    """Resolve the bearer token to a stored user.

    The resolved user is cached on the request state so nested dependencies
    do not hit the store twice.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthenticated("No token provided")

    user = await users.resolve_token(credentials.credentials)
    request.state.user = user
    return user


def role_required(role: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role != role:
            raise Forbidden()
        return user

    return dependency


require_agent = role_required(Role.AGENT)

CurrentUser = Annotated[User, Depends(get_current_user)]
AgentUser = Annotated[User, Depends(require_agent)]
