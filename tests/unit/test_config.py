"""
Unit tests for configuration management.
"""

import os
from unittest.mock import patch

import pytest

from exception_notify.config import Settings


def test_settings_has_default_values():
    """Test that settings have appropriate default values."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

    assert settings.enabled is True
    assert settings.app_name == "unknown"
    assert settings.environment.current == "dev"
    assert settings.environment.report_from == {"test", "prod"}
    assert settings.notification.title_template == "[{appName}] Exception Alert"
    assert settings.notification.max_stacktrace_lines == 10
    assert settings.notification.deduplication.enabled is True
    assert settings.notification.deduplication.time_window_minutes == 3
    assert settings.notification.deduplication.cleanup_interval_minutes == 60
    assert settings.trace.header_name == "X-Trace-Id"
    assert settings.github.branch == "master"
    assert settings.ai.enabled is False


def test_settings_loads_from_environment():
    """Test that settings can be loaded from environment variables."""
    with patch.dict(os.environ, {
        "EXCEPTION_NOTIFY_APP_NAME": "orders",
        "EXCEPTION_NOTIFY_LOG_LEVEL": "DEBUG",
        "EXCEPTION_NOTIFY_ENVIRONMENT__CURRENT": "prod",
        "EXCEPTION_NOTIFY_GITHUB__TOKEN": "ghp_test",
        "EXCEPTION_NOTIFY_GITHUB__REPO_OWNER": "acme",
        "EXCEPTION_NOTIFY_NOTIFICATION__DEDUPLICATION__TIME_WINDOW_MINUTES": "10",
    }, clear=True):
        settings = Settings(_env_file=None)

    assert settings.app_name == "orders"
    assert settings.log_level == "DEBUG"
    assert settings.environment.current == "prod"
    assert settings.github.token == "ghp_test"
    assert settings.github.repo_owner == "acme"
    assert settings.notification.deduplication.time_window_minutes == 10


def test_environment_should_report():
    settings = Settings(_env_file=None)

    assert settings.environment.should_report("prod") is True
    assert settings.environment.should_report("test") is True
    assert settings.environment.should_report("dev") is False
    assert settings.environment.should_report() is False


def test_settings_from_yaml(tmp_path):
    config_file = tmp_path / "exception-notify.yaml"
    config_file.write_text(
        """
exception-notify:
  app-name: billing
  environment:
    current: prod
    report-from: [prod]
  package-filter:
    enabled: true
    include-packages: [billing]
  notification:
    max-stacktrace-lines: 5
    deduplication:
      time-window-minutes: 1
  dingtalk:
    webhook: https://oapi.dingtalk.com/robot/send?access_token=x
    mentions:
      dev-user-1: [alice@example.com]
""",
        encoding="utf-8",
    )

    with patch.dict(os.environ, {}, clear=True):
        settings = Settings.from_yaml(config_file)

    assert settings.app_name == "billing"
    assert settings.environment.report_from == {"prod"}
    assert settings.package_filter.include_packages == ["billing"]
    assert settings.notification.max_stacktrace_lines == 5
    assert settings.notification.deduplication.time_window_minutes == 1
    assert settings.dingtalk.webhook.startswith("https://oapi.dingtalk.com")
    # mention keys are user ids and keep their hyphens
    assert settings.dingtalk.mentions == {"dev-user-1": ["alice@example.com"]}


def test_settings_from_yaml_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Settings.from_yaml(tmp_path / "missing.yaml")


def test_settings_from_yaml_rejects_non_mapping(tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        Settings.from_yaml(config_file)
