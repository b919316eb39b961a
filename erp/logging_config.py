from __future__ import annotations

import logging

from erp.context import get_request_id


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record as ``record.request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_app_logging(level: str = "INFO") -> None:
    """
    Logging configuration for this repo.

    Notes:
    - We use stdlib logging; uvicorn already configures its own handlers.
    - Records under ``erp.*`` get a handler whose format includes the request id.
    - Set ``APP_LOG_LEVEL=DEBUG`` (or INFO/WARNING/ERROR) to control verbosity.
    """

    normalized = level.upper()
    logger = logging.getLogger("erp")
    logger.setLevel(normalized)

    if not any(getattr(h, "_erp_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s")
        )
        handler.addFilter(RequestIdFilter())
        handler._erp_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.propagate = True
