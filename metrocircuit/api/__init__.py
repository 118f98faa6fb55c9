"""MetroCircuit API layer: action dispatch, routes, schemas and middleware."""

from metrocircuit.api.dispatcher import ActionDispatcher
from metrocircuit.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from metrocircuit.api.routes import router

__all__ = [
    "ActionDispatcher",
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
]
