"""
Application configuration management.

Settings are read from environment variables (prefix ``EXCEPTION_NOTIFY_``,
nested sections separated by ``__``), an optional ``.env`` file, or a YAML
document via :meth:`Settings.from_yaml`.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Keys under these sections are user ids, not field names, and are kept verbatim
_VERBATIM_KEYS = {"mentions"}


class EnvironmentSettings(BaseModel):
    """Which environment we run in and which ones report exceptions."""

    current: str = "dev"
    report_from: Set[str] = Field(default_factory=lambda: {"test", "prod"})

    def should_report(self, current: Optional[str] = None) -> bool:
        return (current or self.current) in self.report_from


class PackageFilterSettings(BaseModel):
    """Restricts frame selection to the application's own packages."""

    enabled: bool = False
    include_packages: List[str] = Field(default_factory=list)
    # Prefix prepended to module paths when asking VCS backends (e.g. "src")
    source_root: str = ""


class DeduplicationSettings(BaseModel):
    enabled: bool = True
    time_window_minutes: float = 3
    cleanup_interval_minutes: float = 60


class NotificationSettings(BaseModel):
    title_template: str = "[{appName}] Exception Alert"
    include_stacktrace: bool = True
    max_stacktrace_lines: int = 10
    max_recorded_frames: int = 200
    ignored_exceptions: List[str] = Field(default_factory=list)
    deduplication: DeduplicationSettings = Field(default_factory=DeduplicationSettings)


class TraceSettings(BaseModel):
    enabled: bool = True
    header_name: str = "X-Trace-Id"


class TencentClsSettings(BaseModel):
    region: Optional[str] = None
    topic_id: Optional[str] = None


class GitHubSettings(BaseModel):
    token: Optional[str] = None
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    branch: str = "master"
    api_url: str = "https://api.github.com"


class GiteeSettings(BaseModel):
    token: Optional[str] = None
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    branch: str = "master"
    api_url: str = "https://gitee.com/api/v5"


class GitLabSettings(BaseModel):
    token: Optional[str] = None
    project_id: Optional[str] = None
    base_url: str = "https://gitlab.com/api/v4"
    branch: str = "master"


class WebhookChannelSettings(BaseModel):
    """A chat channel reached through an incoming-webhook URL."""

    webhook: Optional[str] = None
    mention_enabled: bool = True
    # chat user id -> git emails that map to that user
    mentions: Dict[str, List[str]] = Field(default_factory=dict)


class AISettings(BaseModel):
    enabled: bool = False
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    azure_endpoint: Optional[str] = None
    azure_api_version: str = "2024-02-15-preview"
    model: str = "gpt-4o-mini"
    max_tokens: int = 500
    temperature: float = 0.7
    timeout_seconds: float = 30.0
    include_code_context: bool = True
    code_context_lines: int = 5


class Settings(BaseSettings):
    """Exception notification settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXCEPTION_NOTIFY_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    enabled: bool = True
    app_name: str = "unknown"
    log_level: str = "INFO"
    http_timeout_seconds: float = 5.0

    environment: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    package_filter: PackageFilterSettings = Field(default_factory=PackageFilterSettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)
    trace: TraceSettings = Field(default_factory=TraceSettings)
    tencentcls: TencentClsSettings = Field(default_factory=TencentClsSettings)

    # Source control
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    gitee: GiteeSettings = Field(default_factory=GiteeSettings)
    gitlab: GitLabSettings = Field(default_factory=GitLabSettings)

    # Notification channels
    dingtalk: WebhookChannelSettings = Field(default_factory=WebhookChannelSettings)
    feishu: WebhookChannelSettings = Field(default_factory=WebhookChannelSettings)
    wechatwork: WebhookChannelSettings = Field(default_factory=WebhookChannelSettings)
    slack: WebhookChannelSettings = Field(default_factory=WebhookChannelSettings)

    # AI suggestions
    ai: AISettings = Field(default_factory=AISettings)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Settings":
        """
        Load settings from a YAML file.

        The document may either hold the settings at the top level or under an
        ``exception-notify`` / ``exception_notify`` key. Hyphenated keys are
        accepted (``time-window-minutes``). Values given in the file take
        precedence over environment variables.

        Args:
            path: Path to the YAML file

        Returns:
            Settings instance

        Raises:
            FileNotFoundError: If the file does not exist
            yaml.YAMLError: If the file is malformed
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}

        if not isinstance(document, dict):
            raise ValueError(f"Expected a mapping at the top of {config_path}")

        for key in ("exception-notify", "exception_notify"):
            if key in document:
                document = document[key] or {}
                break

        return cls(**_normalize_keys(document))


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        normalized = {}
        for key, item in value.items():
            name = str(key).replace("-", "_")
            if name in _VERBATIM_KEYS and isinstance(item, dict):
                normalized[name] = item
            else:
                normalized[name] = _normalize_keys(item)
        return normalized
    if isinstance(value, list):
        return [_normalize_keys(item) for item in value]
    return value


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
