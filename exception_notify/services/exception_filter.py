"""Exception filters decide whether an exception is worth a notification at all."""

from abc import ABC, abstractmethod
from typing import Iterable


def qualified_type_name(error_type: type) -> str:
    """Return ``module.QualName`` for a type, without the ``builtins.`` prefix."""
    module = error_type.__module__
    if module in (None, "builtins"):
        return error_type.__qualname__
    return f"{module}.{error_type.__qualname__}"


class ExceptionFilter(ABC):
    """Base interface for exception filters."""

    @abstractmethod
    def should_notify(self, error: BaseException) -> bool:
        """Return True to let the exception through to analysis and dispatch."""
        pass


class DefaultExceptionFilter(ExceptionFilter):
    """
    Lets everything through except configured exception types.

    A type is ignored when it, or any of its base classes, matches one of
    ``ignored_exceptions`` by qualified or bare name.
    """

    def __init__(self, ignored_exceptions: Iterable[str] = ()):
        self.ignored_exceptions = frozenset(ignored_exceptions)

    def should_notify(self, error: BaseException) -> bool:
        if not self.ignored_exceptions:
            return True

        for klass in type(error).__mro__:
            if klass.__qualname__ in self.ignored_exceptions:
                return False
            if qualified_type_name(klass) in self.ignored_exceptions:
                return False
        return True
