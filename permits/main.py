import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from permits.api.v1.router import v1_router
from permits.core.config import get_settings
from permits.core.exceptions import PermitError
from permits.core.logging import configure_logging
from permits.core.middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)


async def permit_error_handler(request: Request, exc: PermitError) -> JSONResponse:
    # conflicts warn, other client errors are info
    level = logging.WARNING if exc.status_code == 409 else logging.INFO
    logger.log(
        level,
        "request failed",
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "request_id": getattr(request.state, "request_id", None),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )

    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # Domain errors -> {"error": {...}} with their HTTP status
    app.add_exception_handler(PermitError, permit_error_handler)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
