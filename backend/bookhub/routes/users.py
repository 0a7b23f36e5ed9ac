from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from bookhub.core.deps import get_authenticator, get_current_user
from bookhub.core.validation import parse_payload
from bookhub.models.user import User
from bookhub.services.auth_service import Authenticator


router = APIRouter()


class RegisterRequest(BaseModel):
    name: str = Field(min_length=3, max_length=10)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: str
    organization_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    success: bool = True
    message: str
    data: UserOut


class LoginData(BaseModel):
    token: str
    name: str
    email: EmailStr


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    data: LoginData


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: Optional[Any] = Body(None),
    authenticator: Authenticator = Depends(get_authenticator),
):
    data = parse_payload(RegisterRequest, payload)
    user = authenticator.register(data.name, data.email, data.password)
    return UserResponse(message="User created successfully", data=UserOut.model_validate(user))


@router.post("/login", response_model=LoginResponse)
def login(
    payload: Optional[Any] = Body(None),
    authenticator: Authenticator = Depends(get_authenticator),
):
    data = parse_payload(LoginRequest, payload)
    token, user = authenticator.login(data.email, data.password)
    return LoginResponse(
        message="Login successful",
        data=LoginData(token=token, name=user.name, email=user.email),
    )


@router.get("/me", response_model=UserResponse)
def read_current_user(user: User = Depends(get_current_user)):
    return UserResponse(message="Current user", data=UserOut.model_validate(user))
