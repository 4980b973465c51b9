"""Tests for structraven.processors."""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.testing import capture_logs

from structraven.breadcrumbs import BreadcrumbBuffer
from structraven.config import Configuration
from structraven.context import Context
from structraven.event import Event, Severity
from structraven.processors import (
    _LEVEL_MAP,
    BreadcrumbProcessor,
    CaptureProcessor,
    _exception_from,
)


class TestLevelMap:
    def test_all_log_methods_mapped(self) -> None:
        for method in ("trace", "debug", "info", "success", "warning", "warn", "error",
                       "exception", "critical", "fatal"):
            assert method in _LEVEL_MAP

    def test_canonical_values(self) -> None:
        assert _LEVEL_MAP["trace"] is Severity.DEBUG
        assert _LEVEL_MAP["warn"] is Severity.WARNING
        assert _LEVEL_MAP["exception"] is Severity.ERROR
        assert _LEVEL_MAP["critical"] is Severity.FATAL


class TestExceptionFrom:
    def test_instance(self) -> None:
        exc = ValueError("x")
        assert _exception_from(exc) is exc

    def test_tuple(self) -> None:
        exc = ValueError("x")
        assert _exception_from((ValueError, exc, None)) is exc

    def test_true_inside_handler(self) -> None:
        try:
            raise KeyError("k")
        except KeyError as exc:
            assert _exception_from(True) is exc

    def test_other_values(self) -> None:
        assert _exception_from(None) is None
        assert _exception_from(False) is None
        assert _exception_from("boom") is None


class TestBreadcrumbProcessor:
    def test_records_payload(self) -> None:
        trail = BreadcrumbBuffer()
        processor = BreadcrumbProcessor(trail)
        event_dict = {"event": "user logged in", "user_id": 7, "timestamp": "now"}
        result = processor(None, "info", event_dict)

        assert result is event_dict
        (crumb,) = list(trail)
        assert crumb.message == "user logged in"
        assert crumb.category == "structlog"
        assert crumb.level == "info"
        assert crumb.data == {"user_id": 7}

    def test_below_min_level_skipped(self) -> None:
        trail = BreadcrumbBuffer()
        processor = BreadcrumbProcessor(trail, min_level=Severity.WARNING)
        processor(None, "info", {"event": "noise"})
        processor(None, "warning", {"event": "disk almost full"})
        assert [c.message for c in trail] == ["disk almost full"]

    def test_unknown_method_treated_as_info(self) -> None:
        trail = BreadcrumbBuffer()
        BreadcrumbProcessor(trail, category="app")(None, "msg", {"event": "hello"})
        (crumb,) = list(trail)
        assert crumb.level == "info"
        assert crumb.category == "app"


class TestCaptureProcessor:
    def test_ignores_lower_levels(self, configuration: Configuration) -> None:
        sent: list[Event] = []
        processor = CaptureProcessor(sent.append, configuration=configuration)
        processor(None, "warning", {"event": "careful"})
        assert sent == []

    def test_message_event(self, configuration: Configuration) -> None:
        sent: list[Event] = []
        processor = CaptureProcessor(
            sent.append,
            configuration=configuration,
            context=Context(user={"id": 3}),
            tag_keys=frozenset({"shard"}),
        )
        event_dict = {"event": "payment failed", "logger": "billing", "shard": 4, "order": 99}
        result = processor(None, "error", event_dict)

        assert result is event_dict
        (event,) = sent
        assert event.message == "payment failed"
        assert event.level is Severity.ERROR
        assert event.logger == "billing"
        assert event.tags == {"shard": "4"}
        assert event.extra == {"order": 99}
        assert event.user == {"id": 3}
        assert event_dict["shard"] == 4

    def test_logger_name_from_stdlib_logger(self, configuration: Configuration) -> None:
        sent: list[Event] = []
        processor = CaptureProcessor(sent.append, configuration=configuration)
        processor(logging.getLogger("app.jobs"), "critical", {"event": "worker died"})
        (event,) = sent
        assert event.logger == "app.jobs"
        assert event.level is Severity.FATAL

    def test_exception_event(self, configuration: Configuration) -> None:
        sent: list[Event] = []
        processor = CaptureProcessor(sent.append, configuration=configuration)
        try:
            raise ValueError("bad row")
        except ValueError:
            processor(None, "exception", {"event": "import failed", "exc_info": True})

        (event,) = sent
        assert event.message == "ValueError: bad row"
        chain = event.interface("exception")
        assert chain is not None
        assert chain.values[-1].type == "ValueError"  # type: ignore[attr-defined]
        assert event.culprit is not None
        assert "test_exception_event" in event.culprit

    def test_excluded_exception_not_sent(self, configuration: Configuration) -> None:
        configuration.excluded_exceptions = frozenset({"ValueError"})
        sent: list[Event] = []
        processor = CaptureProcessor(sent.append, configuration=configuration)
        processor(None, "error", {"event": "ignored", "exc_info": ValueError("x")})
        assert sent == []

    def test_breadcrumbs_attached(self, configuration: Configuration) -> None:
        trail = BreadcrumbBuffer()
        sent: list[Event] = []
        breadcrumbs = BreadcrumbProcessor(trail)
        capture = CaptureProcessor(sent.append, configuration=configuration, breadcrumbs=trail)

        for event_dict in ({"event": "start"}, {"event": "crash"}):
            method = "info" if event_dict["event"] == "start" else "error"
            capture(None, method, breadcrumbs(None, method, event_dict))

        (event,) = sent
        values = event.to_document()["breadcrumbs"]["values"]
        assert [crumb["message"] for crumb in values] == ["start", "crash"]

    def test_sink_failure_logged_not_raised(self, configuration: Configuration) -> None:
        def broken_sink(_event: Event) -> None:
            raise ConnectionError("collector down")

        processor = CaptureProcessor(broken_sink, configuration=configuration)
        with capture_logs() as logs:
            result = processor(None, "error", {"event": "boom"})

        assert result == {"event": "boom"}
        assert logs[0]["event"] == "Event sink failed"
        assert logs[0]["log_level"] == "warning"
        assert "collector down" in logs[0]["error"]

    def test_captures_again_after_sink_failure(self, configuration: Configuration) -> None:
        calls: list[Event] = []

        def failing_sink(event: Event) -> None:
            calls.append(event)
            raise ConnectionError("collector down")

        processor = CaptureProcessor(failing_sink, configuration=configuration)
        processor(None, "error", {"event": "first"})
        processor(None, "error", {"event": "second"})
        assert [e.message for e in calls] == ["first", "second"]


class TestStructlogPipeline:
    def test_configured_chain(self, configuration: Configuration) -> None:
        trail = BreadcrumbBuffer()
        sent: list[Event] = []
        structlog.configure(
            processors=[
                BreadcrumbProcessor(trail),
                CaptureProcessor(sent.append, configuration=configuration, breadcrumbs=trail),
                structlog.processors.KeyValueRenderer(),
            ],
            logger_factory=structlog.ReturnLoggerFactory(),
        )
        logger = structlog.get_logger()
        logger.info("request started", path="/orders")
        rendered = logger.error("request failed", path="/orders")

        assert "event='request failed'" in rendered
        (event,) = sent
        assert event.extra == {"path": "/orders"}
        assert len(trail) == 2

    def test_failing_sink_at_warning_level_captures_once(
        self, configuration: Configuration
    ) -> None:
        calls: list[Event] = []

        def failing_sink(event: Event) -> None:
            calls.append(event)
            raise ConnectionError("collector down")

        structlog.configure(
            processors=[
                CaptureProcessor(
                    failing_sink, configuration=configuration, event_level=Severity.WARNING
                ),
                structlog.processors.KeyValueRenderer(),
            ],
            logger_factory=structlog.ReturnLoggerFactory(),
        )
        rendered = structlog.get_logger("app").warning("careful")

        assert "event='careful'" in rendered
        assert len(calls) == 1
        assert calls[0].message == "careful"


def test_exc_info_tuple_uses_exception(configuration: Configuration) -> None:
    sent: list[Event] = []
    processor = CaptureProcessor(sent.append, configuration=configuration)
    try:
        raise LookupError("missing")
    except LookupError:
        processor(None, "error", {"event": "lookup", "exc_info": sys.exc_info()})
    (event,) = sent
    assert event.message == "LookupError: missing"
