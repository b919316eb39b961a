from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp.db.base import Base, RecordMixin
from erp.security.passwords import hash_password, verify_password


user_roles = Table(
    "rbac_user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id"), primary_key=True),
    Column("rbac_role_id", ForeignKey("rbac_roles.id"), primary_key=True),
)

role_permissions = Table(
    "rbac_role_permissions",
    Base.metadata,
    Column("rbac_role_id", ForeignKey("rbac_roles.id"), primary_key=True),
    Column("rbac_permission_id", ForeignKey("rbac_permissions.id"), primary_key=True),
)


class Permission(RecordMixin, Base):
    """A permission point: one route template + HTTP method."""

    __tablename__ = "rbac_permissions"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    path: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    method: Mapped[str] = mapped_column(String(20), default="", nullable=False)

    roles: Mapped[list["Role"]] = relationship(secondary=role_permissions, back_populates="permissions")


class Role(RecordMixin, Base):
    __tablename__ = "rbac_roles"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    remark: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    # 0 disabled, 1 enabled
    status: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Comma separated menu ids.
    menu_ids: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    permissions: Mapped[list[Permission]] = relationship(secondary=role_permissions, back_populates="roles")
    users: Mapped[list["User"]] = relationship(secondary=user_roles, back_populates="roles")

    @property
    def menus(self) -> list[int]:
        return [int(part) for part in (self.menu_ids or "").split(",") if part.strip().isdigit()]

    @menus.setter
    def menus(self, value: list[int]) -> None:
        self.menu_ids = ",".join(str(menu_id) for menu_id in value)


class User(RecordMixin, Base):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    nickname: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    password: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    gender: Mapped[str] = mapped_column(String(10), default="", nullable=False)
    age: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # 0 disabled, 1 enabled
    status: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    roles: Mapped[list[Role]] = relationship(secondary=user_roles, back_populates="users")

    def set_password(self, password: str) -> None:
        self.password = hash_password(password)

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password)
