"""
Decorator reporting exceptions raised by a function.
"""

import asyncio
import inspect
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from exception_notify.services.notification_service import ExceptionNotificationService

F = TypeVar("F", bound=Callable[..., Any])


def notify_exceptions(service: ExceptionNotificationService, correlation_id: Optional[str] = None) -> Callable[[F], F]:
    """
    Report exceptions raised by the decorated function, then re-raise them.

    Works for both plain and ``async`` functions; for coroutines the report
    runs in a worker thread.

    Example:
        @notify_exceptions(service)
        def import_orders(batch):
            ...
    """
    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    await asyncio.to_thread(service.process_exception, exc, correlation_id)
                    raise

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                service.process_exception(exc, correlation_id)
                raise

        return wrapper  # type: ignore[return-value]

    return decorator
