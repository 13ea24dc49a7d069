from __future__ import annotations

import time

from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "SOS Chat relay is running."


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.

    Returns:
        dict: ``status`` set to "ok" and the server time in milliseconds.
    """

    return {"status": "ok", "timestamp": int(time.time() * 1000)}


@router.options("/{path:path}", status_code=204, include_in_schema=False)
def options_any(path: str) -> Response:
    """Answer any OPTIONS request with an empty 204.

    Real preflights are answered by the CORS middleware before reaching this
    route; it also adds the CORS headers here when an ``Origin`` is sent.
    """
    return Response(status_code=204)
