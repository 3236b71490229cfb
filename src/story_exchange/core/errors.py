"""
Global Error Handling

Exception handlers registered on the story exchange app.

Provider failures (LLM, embeddings, speech) are raised as ``RuntimeError``
subclasses next to the client that produces them and are handled at the
call site. Only database outages and truly unexpected errors reach these
handlers; neither ever returns internal details to the client.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("stories.errors")


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    payload: Dict[str, Any] = {
        "success": False,
        "error": error,
        "detail": detail,
    }
    return JSONResponse(status_code=status_code, content=payload)


async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError,
) -> JSONResponse:
    """
    Map database failures that escape a route to a 503.

    The stores never retry; the client may resubmit once the database is
    reachable again.
    """
    logger.error(
        "Database error during request: %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return _error_response(503, "database_unavailable", "Storage temporarily unavailable")


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error_response(500, "internal_server_error", "Internal server error")
