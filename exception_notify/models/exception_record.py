"""Exception record data models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthorInfo(BaseModel):
    """Last author of the source line an exception was raised from."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    last_commit_time: Optional[datetime] = None
    file_name: str
    line_number: int
    commit_message: Optional[str] = None


class ExceptionRecord(BaseModel):
    """Normalized view of one exception occurrence."""

    model_config = ConfigDict(frozen=True)

    occurred_at: datetime
    error_type: str = Field(..., description="Fully-qualified exception type")
    message: str = "No message"
    location: Optional[str] = Field(None, description="module.function(file:line) of the application frame")
    source_path: Optional[str] = Field(None, description="Repository path of the application frame's file")
    line_number: Optional[int] = None
    stack_trace: List[str] = Field(default_factory=list, description="Frames, innermost first")
    correlation_id: Optional[str] = None
    app_name: str = "unknown"
    environment: Optional[str] = None
    author_info: Optional[AuthorInfo] = None
    trace_url: Optional[str] = None
    ai_suggestion: Optional[str] = None

    def with_environment(self, environment: Optional[str]) -> "ExceptionRecord":
        """Return a copy with the environment backfilled."""
        return self.model_copy(update={"environment": environment})

    def with_ai_suggestion(self, suggestion: Optional[str]) -> "ExceptionRecord":
        return self.model_copy(update={"ai_suggestion": suggestion})
