from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, FastAPI

from erp.db.init_db import init_db
from erp.models.security import Permission
from erp.security.dependencies import authorize
from erp.security.points import PermissionPoint, collect_permission_points, sync_permission_points


def _build_routers() -> list[APIRouter]:
    protected = APIRouter(prefix="/api/things", dependencies=[Depends(authorize)])

    @protected.get("/{id}", summary="thing detail")
    def thing(id: int) -> dict:
        return {}

    @protected.post("/Edit")
    def edit_thing() -> dict:
        return {}

    public = APIRouter()

    @public.get("/open")
    def open_route() -> dict:
        return {}

    @public.delete("/reports/{id}", summary="drop report", dependencies=[Depends(authorize)])
    def drop_report(id: int) -> dict:
        return {}

    return [protected, public]


def test_collect_only_protected_routes():
    points = collect_permission_points(_build_routers())

    assert sorted(points, key=lambda p: p.name) == [
        PermissionPoint(path="/api/things/edit", method="POST", description="edit_thing"),
        PermissionPoint(path="/api/things/{id}", method="GET", description="thing detail"),
        PermissionPoint(path="/reports/{id}", method="DELETE", description="drop report"),
    ]
    assert all("#" in p.name for p in points)


def test_collect_matches_routers_included_in_an_app():
    routers = _build_routers()
    app = FastAPI()
    for router in routers:
        app.include_router(router)

    assert len(collect_permission_points(routers)) == 3
    assert collect_permission_points([]) == []


def test_collect_from_application_routes(app):
    names = {p.name for p in collect_permission_points(app.state.routers)}

    assert "/api/user/info#GET" in names
    assert "/api/rbac/role/{id}#GET" in names
    assert "/api/rbac/delete/permission/{id}#POST" in names
    assert not any(name.startswith("/auth/") for name in names)
    assert "/health#GET" not in names


def test_sync_creates_missing_points_once(permissions):
    points = collect_permission_points(_build_routers()[:1])

    assert sync_permission_points(permissions, points) == 2
    assert sync_permission_points(permissions, points) == 0

    stored = permissions.order(Permission.name).more()
    assert [(p.name, p.path, p.method) for p in stored] == [
        ("/api/things/edit#POST", "/api/things/edit", "POST"),
        ("/api/things/{id}#GET", "/api/things/{id}", "GET"),
    ]


def test_sync_refreshes_descriptions(permissions):
    point = PermissionPoint(path="/api/things/{id}", method="GET", description="old")
    sync_permission_points(permissions, [point])

    renamed = PermissionPoint(path=point.path, method=point.method, description="new")
    assert sync_permission_points(permissions, [renamed]) == 0

    assert permissions.where(Permission.name == point.name).one().description == "new"


def test_sync_does_not_recreate_deleted_points(permissions):
    point = PermissionPoint(path="/api/things/{id}", method="GET", description="thing detail")
    sync_permission_points(permissions, [point])
    stored = permissions.where(Permission.name == point.name).one()

    permissions.delete(stored.id)

    assert sync_permission_points(permissions, [point]) == 0
    assert permissions.count() == 0
    assert permissions.unscoped().count() == 1


def test_startup_registers_points_of_application_routers(app, database, settings, permissions):
    init_db(app, database, settings)

    names = set(permissions.pluck(Permission.name))
    assert {"/api/user/info#GET", "/api/rbac/roles#GET", "/api/user/edit#POST"} <= names


def test_startup_warns_when_nothing_is_protected(database, settings, permissions, caplog):
    bare = FastAPI()
    bare.state.routers = []

    with caplog.at_level(logging.WARNING, logger="erp"):
        init_db(bare, database, settings)

    assert "no protected routes" in caplog.text
    assert permissions.count() == 0
