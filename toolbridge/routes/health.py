import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter()

logger = logging.getLogger("toolbridge.health")


@router.get(
    "/health",
    tags=["Monitoring"],
    summary="Health check endpoint",
    include_in_schema=False,
)
async def health_check(request: Request):
    service = getattr(request.app.state, "tool_service", None)
    registry_open = bool(service is not None and service.registry.is_open)
    payload = {
        "ok": registry_open,
        "status": "ok" if registry_open else "starting",
        "tools": len(service.registry) if registry_open else 0,
    }
    logger.debug("Health probe received")
    return JSONResponse(content=payload, status_code=status.HTTP_200_OK)
