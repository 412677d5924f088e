"""
Exception Analyzer component.

Turns a raised exception into an :class:`ExceptionRecord`: picks the frame
that belongs to the application, asks the configured source control
backends who last touched that line, and links the correlation id to the
trace backend.
"""

import os
import sys
from datetime import datetime
from types import FrameType, TracebackType
from typing import Iterable, List, NamedTuple, Optional, Sequence

from exception_notify.config import Settings
from exception_notify.models import AuthorInfo, ExceptionRecord
from exception_notify.services.exception_filter import qualified_type_name
from exception_notify.services.trace import TraceInfoProvider
from exception_notify.source_control import SourceControlService
from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)


NO_MESSAGE = "No message"

# Third-party and runtime packages never reported as the exception location.
# Standard library modules are skipped as well (see sys.stdlib_module_names),
# so an application whose top-level package shares a stdlib name (`code`,
# `email`, `test`) must list itself in `package_filter.include_packages`.
FRAMEWORK_PACKAGES = (
    "asyncio",
    "concurrent",
    "threading",
    "starlette",
    "fastapi",
    "uvicorn",
    "anyio",
    "httpx",
    "httpcore",
    "pydantic",
    "pydantic_core",
    "pluggy",
    "_pytest",
    "pytest",
    "exception_notify",
)


class StackFrame(NamedTuple):
    """One frame of a traceback."""

    module: str
    function: str
    filename: str
    lineno: int

    @property
    def location(self) -> str:
        return f"{self.module}.{self.function}({os.path.basename(self.filename)}:{self.lineno})"

    def render(self) -> str:
        return f'File "{self.filename}", line {self.lineno}, in {self.module}.{self.function}'


def frame_from(frame: FrameType, lineno: int) -> StackFrame:
    code = frame.f_code
    module = frame.f_globals.get("__name__") or os.path.splitext(os.path.basename(code.co_filename))[0]
    return StackFrame(
        module=module,
        function=getattr(code, "co_qualname", code.co_name),
        filename=code.co_filename,
        lineno=lineno,
    )


def frames_from_traceback(tb: Optional[TracebackType]) -> List[StackFrame]:
    """Return the frames of a traceback, innermost (raising) frame first."""
    frames = []
    while tb is not None:
        frames.append(frame_from(tb.tb_frame, tb.tb_lineno))
        tb = tb.tb_next
    frames.reverse()
    return frames


def frames_from_stack(frame: Optional[FrameType]) -> List[StackFrame]:
    """Return the call stack starting at ``frame``, innermost first."""
    frames = []
    while frame is not None:
        frames.append(frame_from(frame, frame.f_lineno))
        frame = frame.f_back
    return frames


def matches_prefix(module: str, prefixes: Iterable[str]) -> bool:
    return any(module == prefix or module.startswith(prefix + ".") for prefix in prefixes)


class ExceptionAnalyzer:
    """
    Builds exception records.

    Frame selection:
    - With the package filter enabled and non-empty, the first frame (from
      the raising frame outwards) whose module starts with an included
      package wins.
    - Otherwise the first frame outside the standard library and
      :data:`FRAMEWORK_PACKAGES` wins.
    - If nothing qualifies, the raising frame is used, so ``location`` is
      set whenever the exception has a traceback.
    """

    def __init__(
        self,
        settings: Settings,
        source_control_services: Sequence[SourceControlService] = (),
        trace_info_provider: Optional[TraceInfoProvider] = None,
        framework_packages: Sequence[str] = FRAMEWORK_PACKAGES,
    ):
        self.settings = settings
        self.source_control_services = list(source_control_services)
        self.trace_info_provider = trace_info_provider
        self.framework_packages = tuple(framework_packages)

    def analyze(self, error: BaseException, correlation_id: Optional[str] = None) -> ExceptionRecord:
        """
        Analyze exception and create an ExceptionRecord.

        Args:
            error: The exception to analyze
            correlation_id: Trace id of the current request (optional)

        Returns:
            ExceptionRecord; ``environment`` is left for the caller to backfill
        """
        try:
            message = str(error) or NO_MESSAGE
        except Exception as e:
            logger.warning(f"Could not render exception message: {e}")
            message = NO_MESSAGE
        frames = frames_from_traceback(error.__traceback__)
        return self.build_record(qualified_type_name(type(error)), message, frames, correlation_id)

    def build_record(
        self,
        error_type: str,
        message: Optional[str],
        frames: List[StackFrame],
        correlation_id: Optional[str] = None,
    ) -> ExceptionRecord:
        """Assemble a record from already extracted frames."""
        max_frames = self.settings.notification.max_recorded_frames
        if max_frames > 0:
            frames = frames[:max_frames]

        app_frame = self.select_application_frame(frames)

        location = None
        source_path = None
        line_number = None
        author_info = None
        if app_frame is not None:
            location = app_frame.location
            source_path = self.module_to_file_path(app_frame)
            line_number = app_frame.lineno
            author_info = self.find_author_info(source_path, line_number)

        return ExceptionRecord(
            occurred_at=datetime.now().astimezone(),
            error_type=error_type,
            message=message or NO_MESSAGE,
            location=location,
            source_path=source_path,
            line_number=line_number,
            stack_trace=[frame.render() for frame in frames],
            correlation_id=correlation_id or None,
            app_name=self.settings.app_name,
            author_info=author_info,
            trace_url=self.build_trace_url(correlation_id),
        )

    def select_application_frame(self, frames: Sequence[StackFrame]) -> Optional[StackFrame]:
        """
        Find the first application-specific frame.

        Args:
            frames: Frames, innermost first

        Returns:
            The selected frame, or None if there are no frames
        """
        if not frames:
            return None

        package_filter = self.settings.package_filter
        if package_filter.enabled and package_filter.include_packages:
            for frame in frames:
                if any(frame.module.startswith(package) for package in package_filter.include_packages):
                    return frame
        else:
            for frame in frames:
                if not self.is_framework_frame(frame):
                    return frame

        return frames[0]

    def is_framework_frame(self, frame: StackFrame) -> bool:
        top_level = frame.module.split(".", 1)[0]
        if top_level in sys.stdlib_module_names:
            return True
        if "site-packages" in frame.filename or "dist-packages" in frame.filename:
            return True
        return matches_prefix(frame.module, self.framework_packages)

    def module_to_file_path(self, frame: StackFrame) -> str:
        """
        Convert a frame's module name to a repository-relative source path.

        ``orders.service`` becomes ``orders/service.py``; a package's
        ``__init__`` module keeps its ``__init__.py`` file name.
        """
        path = frame.module.replace(".", "/")
        if os.path.basename(frame.filename) == "__init__.py":
            path = f"{path}/__init__.py"
        else:
            path = f"{path}.py"

        source_root = self.settings.package_filter.source_root.strip("/")
        if source_root:
            path = f"{source_root}/{path}"
        return path

    def find_author_info(self, file_path: str, line_number: int) -> Optional[AuthorInfo]:
        """
        Find author information by trying the source control services in order.

        Returns:
            The first non-None AuthorInfo, or None
        """
        for service in self.source_control_services:
            try:
                author_info = service.get_author_info(file_path, line_number)
            except Exception as e:
                logger.error(
                    f"Error getting author information from {service.name}: {e}",
                    exc_info=True,
                )
                continue
            if author_info is not None:
                return author_info
        return None

    def get_code_context(self, record: ExceptionRecord, context_lines: int) -> Optional[str]:
        """Return source lines around the record's application frame from the first backend that has them."""
        if not record.source_path or not record.line_number:
            return None

        for service in self.source_control_services:
            try:
                context = service.get_code_context(record.source_path, record.line_number, context_lines)
            except Exception as e:
                logger.error(f"Error getting code context from {service.name}: {e}", exc_info=True)
                continue
            if context:
                return context
        return None

    def build_trace_url(self, correlation_id: Optional[str]) -> Optional[str]:
        if not self.settings.trace.enabled or not correlation_id or self.trace_info_provider is None:
            return None
        try:
            return self.trace_info_provider.generate_trace_url(correlation_id)
        except Exception as e:
            logger.warning(f"Error generating trace URL: {e}", extra={"correlation_id": correlation_id})
            return None
