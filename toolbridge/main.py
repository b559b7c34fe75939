from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .mcp.service import ToolService
from .routes.health import router as health_router
from .routes.tools import router as tools_router

logger = logging.getLogger("toolbridge.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    service: Optional[ToolService] = getattr(app.state, "tool_service", None)
    if service is None:
        service = ToolService.from_settings(app.state.settings)
        app.state.tool_service = service

    await service.open()
    logger.info(
        "Tool service ready: %d tools, endpoint=%s",
        len(service.registry),
        app.state.settings.execute_base_url,
    )
    try:
        yield
    finally:
        await service.close()
        logger.info("Tool service stopped")


def create_app(settings: Optional[Settings] = None, service: Optional[ToolService] = None) -> FastAPI:
    app = FastAPI(
        title="toolbridge",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.settings = settings or get_settings()
    app.state.tool_service = service

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error("Request validation error: %s", exc.errors())
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"success": False, "error": "invalid request body", "detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.detail,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred.",
                },
            },
        )

    app.include_router(health_router)
    app.include_router(tools_router)
    return app
