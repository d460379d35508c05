import logging
import sys

from pythonjsonlogger import jsonlogger

from permits.core.config import Settings

# libraries that are chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration", "httpx")


def configure_logging(settings: Settings) -> None:
    """
    One JSON line per record on stdout, tagged with the app name and
    environment. Safe to call more than once.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [h for h in root.handlers if not getattr(h, "_permits_json", False)]

    handler = logging.StreamHandler(sys.stdout)
    handler._permits_json = True
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"app": settings.app_name, "env": settings.environment},
        )
    )
    root.addHandler(handler)

    logging.getLogger("permits").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
