# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the users endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from core.approval import ApprovalStatus, Role


# -- Requests --------------------------------------------------------------
# Roles and e-mail addresses arrive as plain strings and are validated by
# users.service so that every entry point reports the same error codes.


class CreateUserRequest(BaseModel):
    name: str
    email: str
    password: str
    role: str = "user"


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None  # re-hashed server-side
    role: Optional[str] = None  # admin only
    approval_status: Optional[str] = None  # admin only: raw status edit


# -- Responses -------------------------------------------------------------
# No hash, no reset-token material – ever.


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    approval_status: ApprovalStatus
    approved: bool
    pending: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[UserOut]


class UserActionResponse(BaseModel):
    success: bool = True
    message: str
    user: UserOut


class CreateUserResponse(UserActionResponse):
    requires_approval: bool


class DeleteUserResponse(BaseModel):
    success: bool = True
    message: str
    user_id: str


# -- Audit log responses ---------------------------------------------------


class AuditLogRow(BaseModel):
    id: int
    actor_id: Optional[str] = None
    target_user_id: Optional[str] = None
    action: str
    detail: Optional[str] = None
    request_ip: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogRow]
