# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from typing import Optional

from pydantic import BaseModel

from core.approval import ApprovalStatus, Role
from users.schemas import UserOut


# -- Requests --------------------------------------------------------------


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    role: str = "user"


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str


class VerifyAndResetRequest(BaseModel):
    email: str
    token: str
    new_password: str


# -- Responses -------------------------------------------------------------


class RegistrationData(BaseModel):
    user_id: str
    name: str
    email: str
    role: Role
    requires_approval: bool
    approval_status: ApprovalStatus


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    data: RegistrationData


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    token_type: str = "bearer"
    user: UserOut


class ProfileResponse(BaseModel):
    success: bool = True
    user: UserOut


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ResetRequestedResponse(MessageResponse):
    # Only populated in development mode; delivery is otherwise out of band.
    reset_token: Optional[str] = None
