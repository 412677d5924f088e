"""Data models for the exception notification pipeline."""

from .exception_record import AuthorInfo, ExceptionRecord

__all__ = [
    "AuthorInfo",
    "ExceptionRecord",
]
