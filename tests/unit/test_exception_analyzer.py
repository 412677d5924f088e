"""Unit tests for ExceptionAnalyzer component."""

from datetime import datetime
from unittest.mock import Mock

import pytest

from exception_notify.config import Settings
from exception_notify.models import AuthorInfo
from exception_notify.services.exception_analyzer import ExceptionAnalyzer, StackFrame
from exception_notify.services.trace import TraceInfoProvider
from exception_notify.source_control import SourceControlService


LIB_SOURCE = '''\
def parse(text):
    raise ValueError("bad json: " + text)
'''

APP_SOURCE = '''\
def load_order(text):
    return parse(text)

def capture(text):
    try:
        load_order(text)
    except ValueError as e:
        return e
'''

FRAMEWORK_ONLY_SOURCE = '''\
def boom():
    raise KeyError("missing")

def capture():
    try:
        boom()
    except KeyError as e:
        return e
'''


def load_module(name, filename, source, **globals_):
    """Execute source as if it were module ``name`` stored at ``filename``."""
    namespace = {"__name__": name, **globals_}
    exec(compile(source, filename, "exec"), namespace)
    return namespace


def app_error():
    """ValueError raised in json.fake_lib.parse, called from myapp.orders.load_order."""
    lib = load_module("json.fake_lib", "json/fake_lib.py", LIB_SOURCE)
    app = load_module("myapp.orders", "myapp/orders.py", APP_SOURCE, parse=lib["parse"])
    return app["capture"]("{")


def framework_only_error():
    """KeyError whose frames all live in denylisted modules."""
    module = load_module("json.fake_decoder", "json/fake_decoder.py", FRAMEWORK_ONLY_SOURCE)
    return module["capture"]()


def make_service(name, author_info=None, side_effect=None):
    service = Mock(spec=SourceControlService)
    service.name = name
    service.get_author_info.return_value = author_info
    if side_effect is not None:
        service.get_author_info.side_effect = side_effect
    return service


@pytest.fixture
def settings():
    return Settings(app_name="orders", _env_file=None)


@pytest.fixture
def author():
    return AuthorInfo(
        name="Alice",
        email="alice@example.com",
        last_commit_time=datetime(2024, 5, 1, 12, 0, 0),
        file_name="myapp/orders.py",
        line_number=2,
        commit_message="Parse orders",
    )


class TestFrameSelection:
    """Tests for application frame selection."""

    def test_skips_framework_frames(self, settings):
        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert record.location == "myapp.orders.load_order(orders.py:2)"
        assert record.source_path == "myapp/orders.py"
        assert record.line_number == 2

    def test_falls_back_to_innermost_frame(self, settings):
        record = ExceptionAnalyzer(settings).analyze(framework_only_error())

        assert record.location == "json.fake_decoder.boom(fake_decoder.py:2)"

    def test_package_filter_selects_included_package(self, settings):
        settings.package_filter.enabled = True
        settings.package_filter.include_packages = ["myapp"]

        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert record.location == "myapp.orders.load_order(orders.py:2)"

    def test_package_filter_without_match_uses_innermost_frame(self, settings):
        settings.package_filter.enabled = True
        settings.package_filter.include_packages = ["billing"]

        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert record.location == "json.fake_lib.parse(fake_lib.py:2)"

    def test_empty_include_list_uses_denylist(self, settings):
        settings.package_filter.enabled = True
        settings.package_filter.include_packages = []

        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert record.location == "myapp.orders.load_order(orders.py:2)"

    def test_exception_raised_in_test_module(self, settings):
        try:
            raise RuntimeError("local")
        except RuntimeError as e:
            error = e

        record = ExceptionAnalyzer(settings).analyze(error)

        assert "test_exception_raised_in_test_module(test_exception_analyzer.py:" in record.location

    def test_select_application_frame_with_no_frames(self, settings):
        assert ExceptionAnalyzer(settings).select_application_frame([]) is None

    def test_site_packages_frames_are_skipped(self, settings):
        analyzer = ExceptionAnalyzer(settings)
        frames = [
            StackFrame("sqlalchemy.engine.base", "execute", "/venv/lib/python3.12/site-packages/sqlalchemy/engine/base.py", 10),
            StackFrame("myapp.repo", "save", "/srv/myapp/repo.py", 42),
        ]

        assert analyzer.select_application_frame(frames).module == "myapp.repo"


    def test_app_package_named_like_stdlib_module(self, settings):
        frames = [
            StackFrame("json.decoder", "decode", "/usr/lib/python3.12/json/decoder.py", 10),
            StackFrame("code.orders", "load", "/srv/code/orders.py", 4),
        ]
        analyzer = ExceptionAnalyzer(settings)

        assert analyzer.select_application_frame(frames) is frames[0]

        settings.package_filter.enabled = True
        settings.package_filter.include_packages = ["code"]

        assert analyzer.select_application_frame(frames) is frames[1]


class TestRecordFields:
    """Tests for the fields of the produced record."""

    def test_stack_trace_is_innermost_first(self, settings):
        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert record.stack_trace == [
            'File "json/fake_lib.py", line 2, in json.fake_lib.parse',
            'File "myapp/orders.py", line 2, in myapp.orders.load_order',
            'File "myapp/orders.py", line 6, in myapp.orders.capture',
        ]

    def test_stack_trace_is_bounded(self, settings):
        settings.notification.max_recorded_frames = 1

        record = ExceptionAnalyzer(settings).analyze(app_error())

        assert len(record.stack_trace) == 1

    def test_type_message_and_app_name(self, settings):
        record = ExceptionAnalyzer(settings).analyze(app_error(), correlation_id="trace-1")

        assert record.error_type == "ValueError"
        assert record.message == "bad json: {"
        assert record.app_name == "orders"
        assert record.correlation_id == "trace-1"
        assert record.environment is None
        assert record.occurred_at.tzinfo is not None

    def test_qualified_type_for_custom_exception(self, settings):
        module = load_module(
            "myapp.errors",
            "myapp/errors.py",
            "class PaymentDeclined(Exception):\n    pass\n",
        )

        record = ExceptionAnalyzer(settings).analyze(module["PaymentDeclined"]("card expired"))

        assert record.error_type == "myapp.errors.PaymentDeclined"

    def test_empty_message_defaults(self, settings):
        record = ExceptionAnalyzer(settings).analyze(ValueError())

        assert record.message == "No message"

    def test_unprintable_exception_still_produces_record(self, settings):
        class UnprintableError(Exception):
            def __str__(self):
                raise RuntimeError("broken __str__")

        try:
            raise UnprintableError()
        except UnprintableError as e:
            error = e

        record = ExceptionAnalyzer(settings).analyze(error)

        assert record.message == "No message"
        assert record.error_type.endswith("UnprintableError")
        assert record.stack_trace
        assert record.location is not None

    def test_never_raised_exception_has_no_location(self, settings):
        record = ExceptionAnalyzer(settings).analyze(ValueError("not raised"))

        assert record.location is None
        assert record.stack_trace == []
        assert record.author_info is None


class TestModuleToFilePath:

    def test_module_path(self, settings):
        frame = StackFrame("myapp.orders.service", "run", "/srv/myapp/orders/service.py", 3)

        assert ExceptionAnalyzer(settings).module_to_file_path(frame) == "myapp/orders/service.py"

    def test_package_init(self, settings):
        frame = StackFrame("myapp.orders", "<module>", "/srv/myapp/orders/__init__.py", 1)

        assert ExceptionAnalyzer(settings).module_to_file_path(frame) == "myapp/orders/__init__.py"

    def test_source_root_prefix(self, settings):
        settings.package_filter.source_root = "/src/"
        frame = StackFrame("myapp.orders", "run", "/srv/src/myapp/orders.py", 3)

        assert ExceptionAnalyzer(settings).module_to_file_path(frame) == "src/myapp/orders.py"


class TestAuthorAttribution:
    """Tests for source control lookups."""

    def test_first_non_empty_result_wins(self, settings, author):
        github = make_service("github", None)
        gitlab = make_service("gitlab", author)
        gitee = make_service("gitee", author)

        record = ExceptionAnalyzer(settings, [github, gitlab, gitee]).analyze(app_error())

        assert record.author_info == author
        github.get_author_info.assert_called_once_with("myapp/orders.py", 2)
        gitlab.get_author_info.assert_called_once_with("myapp/orders.py", 2)
        gitee.get_author_info.assert_not_called()

    def test_lookup_failure_does_not_abort_analysis(self, settings, author):
        broken = make_service("github", side_effect=RuntimeError("boom"))
        working = make_service("gitee", author)

        record = ExceptionAnalyzer(settings, [broken, working]).analyze(app_error())

        assert record.author_info == author
        assert record.location == "myapp.orders.load_order(orders.py:2)"

    def test_no_services(self, settings):
        record = ExceptionAnalyzer(settings, []).analyze(app_error())

        assert record.author_info is None


class TestTraceUrl:

    def test_trace_url_generated_for_correlation_id(self, settings):
        provider = Mock(spec=TraceInfoProvider)
        provider.generate_trace_url.return_value = "https://logs.example.com/trace-1"

        record = ExceptionAnalyzer(settings, trace_info_provider=provider).analyze(app_error(), "trace-1")

        assert record.trace_url == "https://logs.example.com/trace-1"
        provider.generate_trace_url.assert_called_once_with("trace-1")

    def test_no_trace_url_without_correlation_id(self, settings):
        provider = Mock(spec=TraceInfoProvider)

        record = ExceptionAnalyzer(settings, trace_info_provider=provider).analyze(app_error())

        assert record.trace_url is None
        provider.generate_trace_url.assert_not_called()

    def test_no_trace_url_when_trace_disabled(self, settings):
        settings.trace.enabled = False
        provider = Mock(spec=TraceInfoProvider)

        record = ExceptionAnalyzer(settings, trace_info_provider=provider).analyze(app_error(), "trace-1")

        assert record.trace_url is None

    def test_trace_url_failure_yields_none(self, settings):
        provider = Mock(spec=TraceInfoProvider)
        provider.generate_trace_url.side_effect = RuntimeError("bad region")

        record = ExceptionAnalyzer(settings, trace_info_provider=provider).analyze(app_error(), "trace-1")

        assert record.trace_url is None
        assert record.correlation_id == "trace-1"


class TestCodeContext:

    def test_returns_first_available_context(self, settings):
        github = make_service("github")
        github.get_code_context.return_value = None
        gitee = make_service("gitee")
        gitee.get_code_context.return_value = ">  2 | return parse(text)"
        analyzer = ExceptionAnalyzer(settings, [github, gitee])
        record = analyzer.analyze(app_error())

        assert analyzer.get_code_context(record, 3) == ">  2 | return parse(text)"
        gitee.get_code_context.assert_called_once_with("myapp/orders.py", 2, 3)

    def test_no_context_without_location(self, settings):
        github = make_service("github")
        analyzer = ExceptionAnalyzer(settings, [github])
        record = analyzer.analyze(ValueError("not raised"))

        assert analyzer.get_code_context(record, 3) is None
        github.get_code_context.assert_not_called()
