from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    path: str
    method: str


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    remark: str
    status: int
    menus: list[int]
    created_at: datetime
    updated_at: datetime


class RoleWithPermissionsOut(RoleOut):
    permission_ids: list[int] = Field(default_factory=list)


class RoleIn(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    remark: str = Field(default="", max_length=200)
    status: Literal[0, 1] = 1
    menus: list[int] = Field(default_factory=list)


class RoleEdit(BaseModel):
    id: int = Field(gt=0)
    name: str | None = Field(default=None, min_length=1, max_length=50)
    remark: str | None = Field(default=None, max_length=200)
    status: Literal[0, 1] | None = None
    menus: list[int] | None = None


class AssignRolesIn(BaseModel):
    user_id: int = Field(gt=0)
    role_ids: list[int] = Field(min_length=1)


class AssignPermissionsIn(BaseModel):
    role_id: int = Field(gt=0)
    permission_ids: list[int]


class ItemsOut(BaseModel):
    items: list[RoleWithPermissionsOut]
    total: int
