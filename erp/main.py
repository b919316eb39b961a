from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from erp.cache import ExpiringCache
from erp.db import filters as _filters  # noqa: F401  (register soft-delete filter)
from erp.db.init_db import init_db
from erp.db.record import ActiveRecord
from erp.db.session import Database
from erp.logging_config import configure_app_logging
from erp.middleware import install_middleware
from erp.models.security import Permission, Role, User
from erp.routers import auth, health, rbac, users
from erp.security.permissions import PermissionCache, PermissionResolver
from erp.security.tokens import TokenService
from erp.services.rbac import RBACService
from erp.services.users import UserService
from erp.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """
    Composition root: the only place that builds the engine, the caches and the
    services. Everything downstream receives them through ``app.state``.
    """

    settings = settings or get_settings()
    configure_app_logging(settings.log_level)
    database = database or Database(settings.database)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("App startup beginning mode=%s", settings.server.mode)
        init_db(app, database, settings)
        logger.info("Database initialized")

        yield

        logger.info("App shutdown")
        database.dispose()

    app = FastAPI(title="ERP core", debug=settings.debug, lifespan=lifespan)

    user_record = ActiveRecord(User, database.session_factory)
    role_record = ActiveRecord(Role, database.session_factory)
    permission_record = ActiveRecord(Permission, database.session_factory)

    app.state.settings = settings
    app.state.database = database
    app.state.permission_cache = PermissionCache(
        ttl_seconds=settings.permission_cache_ttl_seconds,
        cleanup_seconds=settings.permission_cache_cleanup_seconds,
    )
    app.state.permission_resolver = PermissionResolver(
        user_record, app.state.permission_cache, settings.super_account
    )
    app.state.token_service = TokenService(
        user_record,
        settings.jwt,
        allow_list=ExpiringCache(settings.token_ttl_seconds, settings.token_cleanup_seconds),
    )
    app.state.debounce_cache = ExpiringCache(300.0, 600.0)
    app.state.user_service = UserService(user_record)
    app.state.rbac_service = RBACService(user_record, role_record, permission_record)

    install_middleware(app, settings)

    routers = [health.router, auth.router, users.router, rbac.router]
    for router in routers:
        app.include_router(router)
    # Permission points are collected from these at startup.
    app.state.routers = routers

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "erp.main:app",
        host="0.0.0.0",
        port=settings.server.port,
        timeout_graceful_shutdown=int(settings.server.shutdown_timeout_seconds),
    )
