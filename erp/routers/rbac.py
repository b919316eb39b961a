from __future__ import annotations

from fastapi import APIRouter, Depends

from erp.models.security import Role
from erp.responses import Envelope, ok
from erp.schemas.security import (
    AssignPermissionsIn,
    AssignRolesIn,
    ItemsOut,
    PermissionOut,
    RoleEdit,
    RoleIn,
    RoleOut,
    RoleWithPermissionsOut,
)
from erp.security.dependencies import authorize
from erp.services.providers import get_rbac_service
from erp.services.rbac import RBACService

router = APIRouter(prefix="/api/rbac", tags=["rbac"], dependencies=[Depends(authorize)])


def _with_permission_ids(role: Role) -> RoleWithPermissionsOut:
    out = RoleWithPermissionsOut.model_validate(role)
    out.permission_ids = [p.id for p in role.permissions]
    return out


@router.post("/add/role", summary="create role", response_model=Envelope[RoleOut])
def add_role(payload: RoleIn, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[RoleOut]:
    role = rbac.add_role(payload.name, payload.remark, payload.status, payload.menus)
    return ok(RoleOut.model_validate(role), message="role created")


@router.post("/edit/role", summary="edit role", response_model=Envelope[RoleOut])
def edit_role(payload: RoleEdit, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[RoleOut]:
    role = rbac.edit_role(payload.id, payload.name, payload.remark, payload.status, payload.menus)
    return ok(RoleOut.model_validate(role), message="role updated")


@router.post("/assign/roles", summary="assign roles to user", response_model=Envelope[None])
def assign_roles(payload: AssignRolesIn, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[None]:
    rbac.assign_roles_to_user(payload.user_id, payload.role_ids)
    return ok(message="roles assigned")


@router.post("/assign/permissions", summary="assign permissions to role", response_model=Envelope[None])
def assign_permissions(
    payload: AssignPermissionsIn, rbac: RBACService = Depends(get_rbac_service)
) -> Envelope[None]:
    rbac.assign_permissions_to_role(payload.role_id, payload.permission_ids)
    return ok(message="permissions assigned")


@router.get("/roles", summary="list roles", response_model=Envelope[ItemsOut])
def get_roles(rbac: RBACService = Depends(get_rbac_service)) -> Envelope[ItemsOut]:
    roles = [_with_permission_ids(role) for role in rbac.get_roles()]
    return ok(ItemsOut(items=roles, total=len(roles)))


@router.get("/permissions", summary="list permission points", response_model=Envelope[list[PermissionOut]])
def get_permissions(rbac: RBACService = Depends(get_rbac_service)) -> Envelope[list[PermissionOut]]:
    return ok([PermissionOut.model_validate(p) for p in rbac.get_permissions()])


@router.get("/role/{id}/permissions", summary="role permissions", response_model=Envelope[list[PermissionOut]])
def get_role_permissions(id: int, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[list[PermissionOut]]:
    return ok([PermissionOut.model_validate(p) for p in rbac.get_role_permissions(id)])


@router.get("/role/{id}", summary="role detail", response_model=Envelope[RoleOut])
def get_role(id: int, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[RoleOut]:
    return ok(RoleOut.model_validate(rbac.get_role(id)))


@router.get("/user/{id}/roles", summary="user roles", response_model=Envelope[list[RoleOut]])
def get_user_roles(id: int, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[list[RoleOut]]:
    return ok([RoleOut.model_validate(r) for r in rbac.get_user_roles(id)])


@router.post("/delete/permission/{id}", summary="delete permission point", response_model=Envelope[None])
def delete_permission(id: int, rbac: RBACService = Depends(get_rbac_service)) -> Envelope[None]:
    rbac.delete_permission(id)
    return ok(message="permission deleted")
