from __future__ import annotations

import logging

from sqlalchemy import delete
from sqlalchemy.orm import Session

from erp.db.record import ActiveRecord
from erp.errors import NotFound, ValidationError
from erp.models.security import Permission, Role, User, role_permissions

logger = logging.getLogger(__name__)


class RBACService:
    """
    Role / permission administration.

    Grant changes are not pushed into the permission cache; users already cached see
    them once their entry expires.
    """

    def __init__(
        self,
        users: ActiveRecord[User],
        roles: ActiveRecord[Role],
        permissions: ActiveRecord[Permission],
    ) -> None:
        self._users = users
        self._roles = roles
        self._permissions = permissions

    def add_role(self, name: str, remark: str = "", status: int = 1, menus: list[int] | None = None) -> Role:
        role = Role(name=name, remark=remark, status=status)
        role.menus = menus or []
        return self._roles.create(role)

    def edit_role(
        self,
        role_id: int,
        name: str | None = None,
        remark: str | None = None,
        status: int | None = None,
        menus: list[int] | None = None,
    ) -> Role:
        role = self._roles.read(role_id)

        changed = []
        if name is not None:
            role.name = name
            changed.append(Role.name)
        if remark is not None:
            role.remark = remark
            changed.append(Role.remark)
        if status is not None:
            role.status = status
            changed.append(Role.status)
        if menus is not None:
            role.menus = menus
            changed.append(Role.menu_ids)

        if changed:
            # Explicit selection so that remark="" or status=0 are written too.
            self._roles.select(*changed).update(role)
        return role

    def assign_roles_to_user(self, user_id: int, role_ids: list[int]) -> None:
        wanted = set(role_ids)

        def _assign(tx: Session) -> None:
            try:
                user = self._users.with_transaction(tx).preload("roles").read(user_id)
            except NotFound:
                raise NotFound("user not found") from None
            roles = self._roles.with_transaction(tx).where(Role.id.in_(wanted)).more()
            if len(roles) != len(wanted):
                raise ValidationError("some roles do not exist")
            user.roles = roles

        self._users.transaction(_assign)
        logger.info("Roles assigned user_id=%s role_ids=%s", user_id, sorted(wanted))

    def assign_permissions_to_role(self, role_id: int, permission_ids: list[int]) -> None:
        wanted = set(permission_ids)

        def _assign(tx: Session) -> None:
            try:
                role = self._roles.with_transaction(tx).preload("permissions").read(role_id)
            except NotFound:
                raise NotFound("role not found") from None
            permissions = self._permissions.with_transaction(tx).where(Permission.id.in_(wanted)).more()
            if len(permissions) != len(wanted):
                raise ValidationError("some permissions do not exist")
            role.permissions = permissions

        self._roles.transaction(_assign)
        logger.info("Permissions assigned role_id=%s permission_ids=%s", role_id, sorted(wanted))

    def get_role(self, role_id: int) -> Role:
        return self._roles.read(role_id)

    def get_user_roles(self, user_id: int) -> list[Role]:
        return list(self._users.preload("roles").read(user_id).roles)

    def get_roles(self) -> list[Role]:
        return self._roles.preload("permissions").order(Role.id).more()

    def get_permissions(self) -> list[Permission]:
        return self._permissions.order(Permission.id).more()

    def get_role_permissions(self, role_id: int) -> list[Permission]:
        return list(self._roles.preload("permissions").read(role_id).permissions)

    def delete_permission(self, permission_id: int) -> None:
        """Remove every grant of the permission, then soft-delete it, atomically."""

        def _delete(tx: Session) -> None:
            tx.execute(delete(role_permissions).where(role_permissions.c.rbac_permission_id == permission_id))
            self._permissions.with_transaction(tx).delete(permission_id)

        self._permissions.transaction(_delete)
        logger.info("Permission deleted permission_id=%s", permission_id)
