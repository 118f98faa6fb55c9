"""FastAPI routes for MetroCircuit.

Endpoint                 Method  Description
/api/v1/action           POST    Run one action (see ``dispatcher.py``)
/api/v1/health           GET     Health check + provider status

The dispatcher is resolved from ``app.state`` (populated by
``main._build_all``).
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from metrocircuit.api.dispatcher import ActionDispatcher
from metrocircuit.api.schemas import ErrorResponse, HealthResponse
from metrocircuit.utils.errors import MetroCircuitError
from metrocircuit.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_dispatcher(request: Request) -> ActionDispatcher:
    return request.app.state.dispatcher


@router.post("/action")
async def run_action(
    payload: Annotated[dict[str, Any], Body()],
    dispatcher: Annotated[ActionDispatcher, Depends(_get_dispatcher)],
) -> JSONResponse:
    """Dispatch an action; application errors become ``{"error": message}``."""
    try:
        result = await dispatcher.dispatch(payload)
    except MetroCircuitError as exc:
        _logger.warning(
            "action_failed",
            action=payload.get("action"),
            error_type=type(exc).__name__,
            message=exc.message,
            provider=exc.provider_name,
        )
        return JSONResponse(status_code=400, content=ErrorResponse(error=exc.message).model_dump())
    return JSONResponse(content=result)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    dispatcher: Annotated[ActionDispatcher, Depends(_get_dispatcher)],
) -> HealthResponse:
    """Return application health, version and provider availability."""
    return dispatcher.health()
