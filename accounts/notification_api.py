"""FastAPI application that lets other services trigger account emails over HTTP."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import TransportError
from .events import Operation
from .notifications import Notifier

logger = logging.getLogger("accounts.notification_api")


class NotificationRequest(BaseModel):
    operation: Optional[str] = None
    email: Optional[str] = None


def create_app(*, notifier: Notifier) -> FastAPI:
    """Create the notification API around a configured :class:`Notifier`."""

    app = FastAPI(title="Accounts Notification API")
    app.state.notifier = notifier

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_request: Request, _exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request"})

    @app.exception_handler(TransportError)
    async def _transport_error(_request: Request, exc: TransportError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/notifications/send")
    async def send_notification(payload: NotificationRequest) -> Response:
        operation = (payload.operation or "").strip()
        email = (payload.email or "").strip()
        if not operation or not email:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": "Both operation and email are required"},
            )

        if operation == Operation.CREATE.value:
            await notifier.send_created(email)
        elif operation == Operation.DELETE.value:
            await notifier.send_deleted(email)
        else:
            logger.warning("Rejected notification request with unknown operation %s", operation)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": f"Unknown operation: {operation}"},
            )

        return Response(status_code=status.HTTP_200_OK)

    return app


__all__ = ["NotificationRequest", "create_app"]
