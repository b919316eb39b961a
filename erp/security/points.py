"""
Permission points: every route protected by ``authorize`` is one grantable permission.

At startup the routes of the application routers are collected (path template
lowercased, method, route summary as description) and upserted into
``rbac_permissions`` under the name ``path#METHOD``.

Points are read from the ``APIRouter`` objects themselves rather than from
``app.routes``: depending on the FastAPI version, included routers show up there
either flattened into ``APIRoute`` objects or as wrapper objects.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from fastapi import APIRouter
from fastapi.params import Depends
from fastapi.routing import APIRoute
from sqlalchemy.orm import Session

from erp.db.record import ActiveRecord
from erp.errors import NotFound
from erp.models.security import Permission
from erp.security.dependencies import authorize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionPoint:
    path: str
    method: str
    description: str

    @property
    def name(self) -> str:
        return f"{self.path}#{self.method}"


def _requires_authorize(dependencies: Sequence[Depends]) -> bool:
    return any(dep.dependency is authorize for dep in dependencies)


def _full_path(router: APIRouter, route: APIRoute) -> str:
    # Routes registered on a router normally carry the router prefix already.
    if router.prefix and not route.path.startswith(router.prefix):
        return router.prefix + route.path
    return route.path


def collect_permission_points(routers: Iterable[APIRouter]) -> list[PermissionPoint]:
    points: dict[str, PermissionPoint] = {}
    for router in routers:
        router_protected = _requires_authorize(router.dependencies)
        for route in router.routes:
            if not isinstance(route, APIRoute):
                continue
            if not (router_protected or _requires_authorize(route.dependencies)):
                continue
            path = _full_path(router, route).lower()
            for method in sorted(route.methods):
                point = PermissionPoint(path=path, method=method.upper(), description=route.summary or route.name)
                points.setdefault(point.name, point)
    return list(points.values())


def sync_permission_points(permissions: ActiveRecord[Permission], points: list[PermissionPoint]) -> int:
    """
    Create missing permission rows and refresh descriptions of existing ones.

    Soft-deleted points are matched too and left deleted. Returns how many rows were created.
    """

    def _sync(tx: Session) -> int:
        bound = permissions.with_transaction(tx).unscoped()
        created = 0
        for point in points:
            try:
                existing = bound.where(Permission.name == point.name).one()
            except NotFound:
                bound.create(
                    Permission(
                        name=point.name,
                        path=point.path,
                        method=point.method,
                        description=point.description,
                    )
                )
                created += 1
                continue
            if existing.description != point.description:
                bound.where(Permission.id == existing.id).update_columns({"description": point.description})
        return created

    created = permissions.transaction(_sync)
    logger.info("Permission points synced total=%s created=%s", len(points), created)
    return created
