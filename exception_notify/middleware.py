"""
Starlette/FastAPI middleware reporting unhandled request exceptions.
"""

import asyncio
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from exception_notify.services.notification_service import ExceptionNotificationService
from exception_notify.services.trace import reset_correlation_id, set_correlation_id
from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)


class ExceptionNotifyMiddleware(BaseHTTPMiddleware):
    """
    Binds the inbound trace header to the correlation id and reports
    exceptions escaping the application.

    The exception is always re-raised so the framework's own error handling
    still produces the response.
    """

    def __init__(self, app: FastAPI, service: ExceptionNotificationService):
        super().__init__(app)
        self.service = service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        header_name = self.service.settings.trace.header_name
        token = set_correlation_id(request.headers.get(header_name))

        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: {exc}",
                extra={"correlation_id": request.headers.get(header_name)},
            )
            # process_exception blocks on VCS and webhook calls
            await asyncio.to_thread(self.service.process_exception, exc)
            raise
        finally:
            reset_correlation_id(token)


def add_exception_notify_middleware(app: FastAPI, service: ExceptionNotificationService) -> None:
    """Install :class:`ExceptionNotifyMiddleware` on a FastAPI application."""
    app.add_middleware(ExceptionNotifyMiddleware, service=service)
