"""Structlog processors that feed the error reporter.

- :class:`BreadcrumbProcessor` records log calls as breadcrumbs.
- :class:`CaptureProcessor` turns error-level log calls into events and hands
  them to a sink (usually a transport's ``send``).

Usage::

    trail = BreadcrumbBuffer()
    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            BreadcrumbProcessor(trail),
            CaptureProcessor(transport.send, configuration=configuration, breadcrumbs=trail),
            ...,
        ],
    )

Place :class:`CaptureProcessor` after :class:`BreadcrumbProcessor` if the
error's own log line should appear in its trail.
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable
from typing import Any

import structlog

from structraven.breadcrumbs import BreadcrumbBuffer, BreadcrumbTrail
from structraven.config import Configuration
from structraven.context import Context
from structraven.event import Event, Severity

log = structlog.get_logger("structraven")

_LEVEL_MAP: dict[str, Severity] = {
    "trace": Severity.DEBUG,
    "debug": Severity.DEBUG,
    "info": Severity.INFO,
    "success": Severity.INFO,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    "error": Severity.ERROR,
    "exception": Severity.ERROR,
    "critical": Severity.FATAL,
    "fatal": Severity.FATAL,
}

_RANK: dict[Severity, int] = {severity: rank for rank, severity in enumerate(Severity)}

# Event-dict keys that describe the log call itself rather than its payload.
_RESERVED_KEYS = frozenset({"event", "exc_info", "stack_info", "level", "logger", "timestamp"})


def _severity(method_name: str) -> Severity:
    return _LEVEL_MAP.get(method_name.lower(), Severity.INFO)


def _payload(event_dict: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in event_dict.items() if k not in _RESERVED_KEYS}


def _exception_from(exc_info: Any) -> BaseException | None:
    """Extract the exception instance from an ``exc_info`` value."""
    if isinstance(exc_info, BaseException):
        return exc_info
    if exc_info is True:
        return sys.exc_info()[1]
    if isinstance(exc_info, tuple) and len(exc_info) == 3:
        value = exc_info[1]
        return value if isinstance(value, BaseException) else None
    return None


class BreadcrumbProcessor:
    """Record each log call at or above *min_level* as a breadcrumb.

    Parameters
    ----------
    buffer:
        The trail to record into.
    category:
        Breadcrumb category.
    min_level:
        Lowest severity recorded.
    """

    def __init__(
        self,
        buffer: BreadcrumbBuffer,
        *,
        category: str = "structlog",
        min_level: Severity = Severity.INFO,
    ) -> None:
        self._buffer = buffer
        self._category = category
        self._min_level = min_level

    def __call__(
        self,
        _logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        level = _severity(method_name)
        if _RANK[level] >= _RANK[self._min_level]:
            self._buffer.record(
                message=str(event_dict.get("event", "")),
                category=self._category,
                level=level.value,
                data=_payload(event_dict),
            )
        return event_dict


class CaptureProcessor:
    """Build an :class:`Event` for log calls at or above *event_level*.

    The event is built from ``exc_info`` when the call carries one, otherwise
    from the message.  Suppressed exceptions produce no event.

    Parameters
    ----------
    sink:
        Receives each finished event.
    configuration, context, breadcrumbs:
        Passed to the event constructors.
    event_level:
        Lowest severity captured.
    tag_keys:
        Event-dict keys copied into the event's tags (as strings); all other
        payload keys go to ``extra``.
    """

    def __init__(
        self,
        sink: Callable[[Event], Any],
        *,
        configuration: Configuration | None = None,
        context: Context | None = None,
        breadcrumbs: BreadcrumbTrail | None = None,
        event_level: Severity = Severity.ERROR,
        tag_keys: frozenset[str] | None = None,
    ) -> None:
        self._sink = sink
        self._configuration = configuration if configuration is not None else Configuration()
        self._context = context
        self._breadcrumbs = breadcrumbs
        self._event_level = event_level
        self._tag_keys = tag_keys or frozenset()
        # Set while this thread builds or sends an event; log calls made from
        # there (diagnostics, sink failures) are not captured again.
        self._local = threading.local()

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        level = _severity(method_name)
        if _RANK[level] < _RANK[self._event_level] or getattr(self._local, "active", False):
            return event_dict

        self._local.active = True
        try:
            self._capture(logger, level, event_dict)
        finally:
            self._local.active = False
        return event_dict

    def _capture(self, logger: Any, level: Severity, event_dict: dict[str, Any]) -> None:
        payload = _payload(event_dict)
        tags = {key: str(payload.pop(key)) for key in self._tag_keys if key in payload}
        logger_name = event_dict.get("logger") or getattr(logger, "name", None)
        options: dict[str, Any] = {
            "configuration": self._configuration,
            "context": self._context,
            "breadcrumbs": self._breadcrumbs,
            "level": level,
            "logger": logger_name if isinstance(logger_name, str) else None,
            "tags": tags,
            "extra": payload,
        }

        exc = _exception_from(event_dict.get("exc_info"))
        if exc is not None:
            event = Event.from_exception(exc, **options)
        else:
            event = Event.from_message(str(event_dict.get("event", "")), **options)

        if event is not None:
            try:
                self._sink(event)
            except Exception as sink_error:
                log.warning("Event sink failed", event_id=event.id, error=repr(sink_error))
