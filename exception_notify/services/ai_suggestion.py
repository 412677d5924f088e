"""
AI suggestion component.

Asks an OpenAI (or Azure OpenAI) chat model for a short root-cause analysis
and fix suggestion for an exception record.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from openai import AzureOpenAI, OpenAI

from exception_notify.config import AISettings
from exception_notify.models import ExceptionRecord
from exception_notify.utils.logging import get_logger
from exception_notify.utils.resilience import CircuitBreaker, create_llm_circuit_breaker

logger = get_logger(__name__)

PROMPT_STACKTRACE_LINES = 15


class AiSuggestionService(ABC):
    """Base interface for AI suggestion services."""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def get_suggestion(self, record: ExceptionRecord, code_context: Optional[str] = None) -> Optional[str]:
        """
        Return a suggestion for the record.

        Returns:
            Suggestion text, or None if the service is unavailable or the call failed
        """
        pass


class OpenAiSuggestionService(AiSuggestionService):
    """Chat-completions based suggestions with circuit breaker protection."""

    def __init__(
        self,
        settings: AISettings,
        client: Optional[Any] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.settings = settings
        self.circuit_breaker = circuit_breaker or create_llm_circuit_breaker()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if self.settings.azure_endpoint:
                self._client = AzureOpenAI(
                    api_key=self.settings.api_key,
                    api_version=self.settings.azure_api_version,
                    azure_endpoint=self.settings.azure_endpoint,
                    timeout=self.settings.timeout_seconds,
                )
                logger.info("Initialized Azure OpenAI client")
            else:
                self._client = OpenAI(
                    api_key=self.settings.api_key,
                    base_url=self.settings.base_url,
                    timeout=self.settings.timeout_seconds,
                )
                logger.info("Initialized OpenAI client")
        return self._client

    def is_available(self) -> bool:
        return bool(self.settings.enabled and self.settings.api_key)

    def get_suggestion(self, record: ExceptionRecord, code_context: Optional[str] = None) -> Optional[str]:
        if not self.is_available():
            logger.debug("AI suggestion service is not available")
            return None

        def _call_llm() -> Optional[str]:
            response = self.client.chat.completions.create(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": self._build_user_prompt(record, code_context)},
                ],
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
            if not response.choices:
                return None
            content = response.choices[0].message.content
            return content.strip() if content else None

        try:
            return self.circuit_breaker.call(_call_llm)
        except Exception as e:
            logger.error(f"LLM API call failed: {e}", extra={"error_type": record.error_type})
            return None

    def _build_system_prompt(self) -> str:
        return """You are an expert Python engineer analyzing production exceptions.

Provide:
1. The likely cause of the exception (1-2 sentences)
2. Possible fixes (2-3 bullet points)

Be concise and actionable."""

    def _build_user_prompt(self, record: ExceptionRecord, code_context: Optional[str]) -> str:
        prompt_parts: List[str] = [
            f"Exception type: {record.error_type}",
            f"Message: {record.message}",
        ]

        if record.location:
            prompt_parts.append(f"Location: {record.location}")

        if record.stack_trace:
            prompt_parts.append("\nStack trace (innermost first):")
            prompt_parts.extend(record.stack_trace[:PROMPT_STACKTRACE_LINES])
            hidden = len(record.stack_trace) - PROMPT_STACKTRACE_LINES
            if hidden > 0:
                prompt_parts.append(f"... ({hidden} more lines)")

        if code_context:
            prompt_parts.append("\nCode around the failing line:")
            prompt_parts.append(code_context)

        return "\n".join(prompt_parts)
