from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from erp.models.security import User


class RoleRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    nickname: str
    email: str
    phone: str
    gender: str
    age: int
    status: int
    roles: list[RoleRef] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class UserIn(BaseModel):
    """Register / edit payload. ``id`` > 0 edits an existing user."""

    id: int = Field(default=0, ge=0)
    username: str = Field(min_length=2, max_length=20)
    phone: str = Field(default="", pattern=r"^(\d{11})?$")
    password: str = Field(default="", max_length=64)
    nickname: str = Field(default="", max_length=20)
    email: EmailStr | Literal[""] = ""
    age: int = Field(default=0, ge=0, le=150)
    gender: Literal["", "male", "female"] = ""
    status: Literal[0, 1] = 1

    @field_validator("password")
    @classmethod
    def _password_length(cls, value: str) -> str:
        if value and len(value) < 6:
            raise ValueError("password must be at least 6 characters")
        return value

    def to_model(self) -> User:
        user = User(
            username=self.username,
            nickname=self.nickname,
            email=str(self.email),
            phone=self.phone,
            password=self.password,
            gender=self.gender,
            age=self.age,
            status=self.status,
        )
        if self.id:
            user.id = self.id
        return user


class UserQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    pageSize: int = Field(default=10, ge=1, le=100)
    username: str = Field(default="", max_length=20)


class UserPageOut(BaseModel):
    items: list[UserOut]
    total: int
    page: int
    page_size: int
