"""JSON logs for the API, the Celery workers and the operator scripts.

Every record carries a ``component`` field so the three processes can share
one log index; money-moving services add ids and amounts through ``extra``.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

from marketplace.core.config import settings

# Libraries that log every request or statement at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "celery.app.trace")


def setup_logging(component: str = "api", level: int | None = None) -> None:
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
        static_fields={"app": settings.app_name, "component": component},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level or (logging.DEBUG if settings.debug else logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
