from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from helpdesk.api.schemas import UserResponse
from helpdesk.dependencies.auth import CurrentUser
from helpdesk.dependencies.services import get_user_service
from helpdesk.users.models import AuthSession, Role
from helpdesk.users.service import UserService

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=2, max_length=100)
    role: Role = Role.CLIENT


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


UserServiceDep = Annotated[UserService, Depends(get_user_service)]


def _to_auth_response(session: AuthSession) -> AuthResponse:
    return AuthResponse(user=UserResponse.model_validate(session.user), token=session.token)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, users: UserServiceDep) -> AuthResponse:
    session = await users.register(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
    )
    return _to_auth_response(session)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, users: UserServiceDep) -> AuthResponse:
    session = await users.login(email=payload.email, password=payload.password)
    return _to_auth_response(session)


@router.get("/me", response_model=UserResponse)
async def me(user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(user)
