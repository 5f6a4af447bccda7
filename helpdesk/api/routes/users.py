from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from helpdesk.api.schemas import UserSummaryResponse
from helpdesk.dependencies.auth import AgentUser
from helpdesk.dependencies.services import get_user_service
from helpdesk.users.service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/agents", response_model=list[UserSummaryResponse], summary="Agents available for assignment")
async def list_agents(
    _: AgentUser,
    users: Annotated[UserService, Depends(get_user_service)],
) -> list[UserSummaryResponse]:
    agents = await users.list_agents()
    return [UserSummaryResponse.model_validate(agent) for agent in agents]
