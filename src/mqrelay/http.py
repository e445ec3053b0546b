"""
Relay HTTP interface

FastAPI application exposing the retained log and the publish gateway:
- GET /messages: every retained record, in sequence order
- POST /messages: publish {"message": "..."} to the broker topic
- GET /health: connection state and counters
"""

from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import RelayError
from .logconfig import get_logger
from .version import __version__

logger = get_logger("http")


class MessageIn(BaseModel):
    """Request body for POST /messages."""

    message: str


def describe_validation_error(exc: RequestValidationError) -> str:
    """Flatten FastAPI's validation error list into one line of text."""
    reasons = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        if location:
            reasons.append(f"{location}: {message}")
        else:
            reasons.append(message)
    return "; ".join(reasons) or "invalid request"


def create_app(bridge) -> FastAPI:
    """
    Build the FastAPI application around a started :class:`mqrelay.bridge.Bridge`.

    Endpoints are plain (sync) functions so that FastAPI runs them in its
    worker thread pool; a POST blocks its worker for the broker round-trip.
    """
    app = FastAPI(
        title="mqrelay",
        description="Relay between a broker topic and HTTP clients",
        version=__version__,
    )
    app.state.bridge = bridge

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        reason = describe_validation_error(exc)
        logger.info(f"Rejected {request.method} {request.url.path}: {reason}")
        return JSONResponse(status_code=400, content={"error": reason})

    @app.exception_handler(RelayError)
    async def relay_error(request: Request, exc: RelayError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.get("/messages")
    def get_messages(since: int = Query(default=0, ge=0)) -> dict[str, Any]:
        """
        Get the retained messages.

        Args:
            since: Only return records with a sequence number above this
        """
        records = bridge.snapshot(since)
        return {"data": [record.to_dict() for record in records]}

    @app.post("/messages")
    def post_message(body: MessageIn) -> dict[str, str]:
        """
        Publish a message to the broker topic.

        The message is not added to the retained log here; it appears there
        once the broker delivers it back through the subscription.
        """
        bridge.submit(body.message)
        return {"message": "Message published"}

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Connection state and ingestion counters."""
        return bridge.health()

    return app


def run_server(app: FastAPI, host: str = "0.0.0.0", port: int = 8080, debug: bool = False) -> None:
    """Serve *app* with uvicorn until SIGINT/SIGTERM."""
    import uvicorn

    logger.info(f"Starting HTTP server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="debug" if debug else "info")
