from __future__ import annotations

import logging

from fastapi import FastAPI

from erp.db.base import Base
from erp.db.record import ActiveRecord
from erp.db.session import Database
from erp.models import security as _security_models  # noqa: F401  (register tables)
from erp.models.security import Permission
from erp.security.points import collect_permission_points, sync_permission_points
from erp.settings import Settings

logger = logging.getLogger(__name__)


def init_db(app: FastAPI, database: Database, settings: Settings) -> None:
    """
    Startup database work, each step behind its own toggle:

    - ``auto_migrate``: create missing tables.
    - ``auto_rbac_point``: register every protected route of ``app.state.routers``
      as a permission point.
    """

    if settings.auto_migrate:
        logger.info("Starting auto migration")
        Base.metadata.create_all(bind=database.engine)
        logger.info("Auto migration completed")
    else:
        logger.info("Auto migration is disabled")

    if settings.auto_rbac_point:
        points = collect_permission_points(getattr(app.state, "routers", ()))
        if not points:
            logger.warning("Permission point sync enabled but no protected routes were found")
        sync_permission_points(ActiveRecord(Permission, database.session_factory), points)
