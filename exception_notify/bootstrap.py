"""
Startup wiring.

Factory functions assembling the pipeline from :class:`Settings`. Only
backends and channels with complete configuration are created.
"""

from typing import List, Optional

from exception_notify.config import Settings, get_settings
from exception_notify.monitor import Monitor
from exception_notify.notification.base import NotificationProvider
from exception_notify.notification.formatter import MarkdownNotificationFormatter, PlainTextNotificationFormatter
from exception_notify.notification.manager import NotificationProviderManager
from exception_notify.notification.providers import (
    DingTalkNotificationProvider,
    FeishuNotificationProvider,
    SlackNotificationProvider,
    WeChatWorkNotificationProvider,
)
from exception_notify.services.ai_suggestion import OpenAiSuggestionService
from exception_notify.services.deduplication import DeduplicationCache
from exception_notify.services.environment import EnvironmentProvider
from exception_notify.services.exception_analyzer import ExceptionAnalyzer
from exception_notify.services.exception_filter import DefaultExceptionFilter
from exception_notify.services.notification_service import ExceptionNotificationService
from exception_notify.services.trace import DefaultTraceInfoProvider
from exception_notify.source_control import GiteeService, GitHubService, GitLabService, SourceControlService
from exception_notify.utils.logging import get_logger, setup_logging
from exception_notify.utils.metrics import PipelineMetrics

logger = get_logger(__name__)


def create_source_control_services(settings: Settings) -> List[SourceControlService]:
    """
    Create the configured source control backends in lookup order
    (GitHub, GitLab, Gitee).
    """
    candidates: List[SourceControlService] = [
        GitHubService(settings.github, timeout=settings.http_timeout_seconds),
        GitLabService(settings.gitlab, timeout=settings.http_timeout_seconds),
        GiteeService(settings.gitee, timeout=settings.http_timeout_seconds),
    ]

    services = []
    for service in candidates:
        if service.is_configured():
            services.append(service)
            logger.info(f"Source control backend enabled: {service.name}")
        else:
            service.close()
    return services


def current_branch(services: List[SourceControlService]) -> Optional[str]:
    """Branch of the first configured backend, shown in notifications."""
    for service in services:
        if service.branch:
            return service.branch
    return None


def create_providers(settings: Settings, branch: Optional[str] = None) -> List[NotificationProvider]:
    """Create a provider for every channel with a webhook configured."""
    markdown = MarkdownNotificationFormatter(settings.notification, branch=branch)
    plain_text = PlainTextNotificationFormatter(settings.notification, branch=branch)
    timeout = settings.http_timeout_seconds

    candidates: List[NotificationProvider] = []
    if settings.dingtalk.webhook:
        candidates.append(DingTalkNotificationProvider(settings.dingtalk, markdown, enabled=settings.enabled, timeout=timeout))
    if settings.feishu.webhook:
        candidates.append(FeishuNotificationProvider(settings.feishu, plain_text, enabled=settings.enabled, timeout=timeout))
    if settings.wechatwork.webhook:
        candidates.append(WeChatWorkNotificationProvider(settings.wechatwork, markdown, enabled=settings.enabled, timeout=timeout))
    if settings.slack.webhook:
        candidates.append(SlackNotificationProvider(settings.slack, plain_text, enabled=settings.enabled, timeout=timeout))
    return candidates


def create_notification_service(
    settings: Optional[Settings] = None,
    start_sweeper: bool = True,
    configure_logging: bool = False,
) -> ExceptionNotificationService:
    """
    Factory function to create ExceptionNotificationService from settings.

    Args:
        settings: Settings to use (default: :func:`get_settings`)
        start_sweeper: Start the deduplication cleanup thread
        configure_logging: Install JSON logging on the root logger at
            ``settings.log_level``; leave off when the host configures logging

    Returns:
        ExceptionNotificationService ready to process exceptions
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level)

    source_control_services = create_source_control_services(settings)
    trace_info_provider = DefaultTraceInfoProvider(settings)
    metrics = PipelineMetrics()

    analyzer = ExceptionAnalyzer(settings, source_control_services, trace_info_provider)
    manager = NotificationProviderManager(
        create_providers(settings, branch=current_branch(source_control_services)),
        metrics=metrics,
    )

    deduplication_cache = DeduplicationCache(settings.notification.deduplication)
    if start_sweeper:
        deduplication_cache.start()

    ai_suggestion_service = OpenAiSuggestionService(settings.ai) if settings.ai.enabled else None

    return ExceptionNotificationService(
        settings=settings,
        analyzer=analyzer,
        manager=manager,
        deduplication_cache=deduplication_cache,
        exception_filter=DefaultExceptionFilter(settings.notification.ignored_exceptions),
        environment_provider=EnvironmentProvider(settings),
        trace_info_provider=trace_info_provider,
        ai_suggestion_service=ai_suggestion_service,
        metrics=metrics,
    )


def create_monitor(service: ExceptionNotificationService) -> Monitor:
    """Create a Monitor sharing the service's analyzer and channels."""
    return Monitor(
        settings=service.settings,
        analyzer=service.analyzer,
        manager=service.manager,
        trace_info_provider=service.trace_info_provider,
        environment_provider=service.environment_provider,
    )
