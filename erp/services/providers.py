from __future__ import annotations

from fastapi import Request

from erp.services.rbac import RBACService
from erp.services.users import UserService
from erp.settings import Settings


def _state(request: Request, name: str):  # noqa: ANN202
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not configured. Was the app built with create_app()?")
    return value


def get_app_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_user_service(request: Request) -> UserService:
    return _state(request, "user_service")


def get_rbac_service(request: Request) -> RBACService:
    return _state(request, "rbac_service")
