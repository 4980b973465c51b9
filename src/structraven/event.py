"""The event aggregate.

An :class:`Event` is the record of one reportable incident.  Build it with
:meth:`Event.from_exception` or :meth:`Event.from_message`, then hand
:meth:`Event.to_document` (or :meth:`Event.to_json`) to a transport::

    configuration = Configuration.from_env(release="1.4.2")

    try:
        charge(order)
    except PaymentError as exc:
        event = Event.from_exception(exc, configuration=configuration, tags={"order": order.id})
        if event is not None:
            transport.send(event.to_json())

Map fields (``tags``, ``extra``, ``user``, ``contexts``) are filled from the
caller's overrides first, then the request :class:`Context`, then the
:class:`Configuration`; a key already present is never overwritten.
"""

from __future__ import annotations

import copy
import enum
import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from types import TracebackType
from typing import Any

import orjson

from structraven.backtrace import Backtrace
from structraven.breadcrumbs import BreadcrumbTrail
from structraven.chain import (
    build_exception_chain,
    get_culprit,
    safe_str,
    stacktrace_from_backtrace,
)
from structraven.config import Configuration
from structraven.context import Context, reverse_merge
from structraven.errors import StructravenError, get_exception_context
from structraven.interfaces import Interface, Message, StackTrace, get_interface
from structraven.modules import list_modules
from structraven.version import __version__

PLATFORM = "python"
SDK: dict[str, str] = {"name": "structraven", "version": __version__}

MESSAGE_MAX_BYTES = 9_999
DEFAULT_FINGERPRINT = "{{ default }}"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


class Severity(enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"

    @classmethod
    def coerce(cls, value: Any) -> Severity | None:
        """Accept a severity, a level name, or a :mod:`logging` level number."""
        if isinstance(value, Severity):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            if value >= logging.CRITICAL:
                return cls.FATAL
            if value >= logging.ERROR:
                return cls.ERROR
            if value >= logging.WARNING:
                return cls.WARNING
            if value >= logging.INFO:
                return cls.INFO
            return cls.DEBUG
        if isinstance(value, str):
            name = value.strip().upper()
            name = _LEVEL_ALIASES.get(name, name)
            try:
                return cls[name]
            except KeyError:
                return None
        return None


_LEVEL_ALIASES: dict[str, str] = {
    "WARN": "WARNING",
    "CRITICAL": "FATAL",
    "EXCEPTION": "ERROR",
}

_MAP_FIELDS = frozenset({"tags", "extra", "user", "contexts", "modules"})

# Fields a caller may set through keyword options, with the accepted types.
# Unknown keys and values of another type are ignored.
OVERRIDABLE_FIELDS: dict[str, tuple[type, ...]] = {
    "timestamp": (datetime,),
    "level": (Severity, str, int),
    "logger": (str,),
    "culprit": (str,),
    "server_name": (str,),
    "release": (str,),
    "environment": (str,),
    "fingerprint": (list, tuple),
    "modules": (Mapping,),
    "tags": (Mapping,),
    "extra": (Mapping,),
    "user": (Mapping,),
    "contexts": (Mapping,),
    "message": (str, tuple),
    "backtrace": (Backtrace, TracebackType, list, tuple, str),
}

# Options consumed by the construction entry points rather than by fields.
_ENTRY_POINT_OPTIONS = frozenset({"message_params"})


def truncate_bytes(text: str, limit: int = MESSAGE_MAX_BYTES) -> str:
    """Cut *text* to at most *limit* UTF-8 bytes.

    The cut is made on the byte boundary; a multi-byte character split by it
    is dropped.
    """
    encoded = text.encode("utf-8", errors="replace")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore")


def _valid_params(params: Any) -> bool:
    if isinstance(params, Mapping):
        return True
    return isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray))


def _format_timestamp(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class Event:
    """A single reportable incident.

    Parameters
    ----------
    configuration:
        Process-level settings.  A default :class:`Configuration` is used
        when omitted.
    context:
        Request-scoped data merged below the event's own maps.
    breadcrumbs:
        The trail recorded before this event.  Its document is taken once,
        here; later crumbs do not reach this event.
    **options:
        Field overrides, see :data:`OVERRIDABLE_FIELDS`.
    """

    def __init__(
        self,
        *,
        configuration: Configuration | None = None,
        context: Context | None = None,
        breadcrumbs: BreadcrumbTrail | None = None,
        **options: Any,
    ) -> None:
        self._interfaces: dict[str, Interface] = {}
        self.configuration = configuration if configuration is not None else Configuration()
        self.context = context if context is not None else Context()
        self.breadcrumbs: dict[str, Any] | None = None
        if breadcrumbs is not None and breadcrumbs.size > 0:
            self.breadcrumbs = breadcrumbs.to_document()

        self._id = uuid.uuid4().hex
        self.timestamp = datetime.now(timezone.utc)
        self.level: Severity | None = Severity.ERROR
        self.logger: str | None = None
        self.culprit: str | None = None
        self.server_name = self.configuration.server_name
        self.release = self.configuration.release
        self.environment: str | None = self.configuration.current_environment
        self.fingerprint: list[str] | None = None
        self.modules: dict[str, str] | None = None
        if self.configuration.send_modules:
            self.modules = list_modules(
                self.configuration.module_lister,
                logger=self.configuration.logger,
            )

        self.contexts: dict[str, Any] = {}
        self.user: dict[str, Any] = {}
        self.extra: dict[str, Any] = {}
        self.tags: dict[str, Any] = {}

        self._apply_options(options)

        reverse_merge(self.contexts, self.context.contexts)
        reverse_merge(self.user, self.context.user)
        reverse_merge(self.extra, self.context.extra)
        reverse_merge(self.tags, self.context.tags, self.configuration.tags)

    def __repr__(self) -> str:
        level = self.level.value if self.level else None
        return f"<Event id={self._id} level={level} culprit={self.culprit!r}>"

    @property
    def id(self) -> str:
        return self._id

    # -- construction -------------------------------------------------------

    @classmethod
    def from_exception(cls, exc: BaseException, **options: Any) -> Event | None:
        """Build an event describing *exc* and its causes.

        Returns ``None`` when *exc* is one of structraven's own errors or its
        class is listed in ``configuration.excluded_exceptions``.
        """
        configuration = options.pop("configuration", None) or Configuration()
        log = configuration.logger
        if isinstance(exc, StructravenError):
            log.debug("Refusing to capture structraven error", error=repr(exc))
            return None
        if configuration.is_excluded(exc):
            log.debug("Excluded exception not captured", error=repr(exc))
            return None

        event = cls(configuration=configuration, **options)
        event.message = truncate_bytes(f"{type(exc).__qualname__}: {safe_str(exc)}")
        reverse_merge(event.extra, get_exception_context(exc))
        event._add_exception_interface(exc)
        return event

    @classmethod
    def from_message(cls, message: str, **options: Any) -> Event:
        """Build an event for a log message with optional ``message_params``."""
        params = options.pop("message_params", None)
        text = truncate_bytes(str(message))
        event = cls(**options)
        event.message = (text, params)
        return event

    @classmethod
    def capture(cls, obj: BaseException | str, **options: Any) -> Event | None:
        """Dispatch to :meth:`from_exception` or :meth:`from_message`."""
        if isinstance(obj, BaseException):
            return cls.from_exception(obj, **options)
        return cls.from_message(str(obj), **options)

    def _add_exception_interface(self, exc: BaseException) -> None:
        def set_culprit(stacktrace: StackTrace) -> None:
            self.culprit = get_culprit(stacktrace.frames)

        values = build_exception_chain(
            exc,
            in_app=self.configuration.in_app,
            project_root=self.configuration.project_root,
            leaf_backtrace=Backtrace(),
            on_stacktrace=set_culprit,
        )
        self.interface("exception", values=values)

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        log = self.configuration.logger
        for key, value in options.items():
            if value is None or key in _ENTRY_POINT_OPTIONS:
                continue
            expected = OVERRIDABLE_FIELDS.get(key)
            if expected is None:
                log.debug("Ignoring unknown event option", option=key)
                continue
            if not isinstance(value, expected) or not self._set_override(key, value):
                log.debug(
                    "Ignoring event option of unexpected type",
                    option=key,
                    type=type(value).__name__,
                )

    def _set_override(self, key: str, value: Any) -> bool:
        if key == "level":
            level = Severity.coerce(value)
            if level is None:
                return False
            self.level = level
        elif key == "fingerprint":
            if not all(isinstance(part, str) for part in value):
                return False
            self.fingerprint = list(value)
        elif key == "message":
            if isinstance(value, tuple) and len(value) != 2:
                return False
            self.message = value
        elif key == "backtrace":
            self.backtrace = value
        elif key in _MAP_FIELDS:
            setattr(self, key, dict(value))
        else:
            setattr(self, key, value)
        return True

    # -- interfaces ---------------------------------------------------------

    def interface(
        self,
        name: str,
        build: Callable[[Any], None] | None = None,
        **fields: Any,
    ) -> Interface | None:
        """Read, attach, or build the interface registered as *name*.

        ``event.interface("message")`` returns the attached interface or
        ``None``.  With keyword *fields* a new instance replaces any previous
        one; with *build* the new instance is passed to the callback for
        in-place population before it is stored.
        """
        iface_cls = get_interface(name)
        if build is None and not fields:
            return self._interfaces.get(iface_cls.sentry_alias)
        iface = iface_cls(**fields)
        if build is not None:
            build(iface)
        self._interfaces[iface_cls.sentry_alias] = iface
        return iface

    @property
    def interfaces(self) -> dict[str, Interface]:
        """Attached interfaces keyed by wire alias (a copy)."""
        return dict(self._interfaces)

    @property
    def message(self) -> str | None:
        iface = self.interface("message")
        if isinstance(iface, Message):
            return iface.unformatted_message
        return None

    @message.setter
    def message(self, value: str | tuple[str, Sequence[Any] | Mapping[str, Any] | None]) -> None:
        """Set the template, or a ``(template, params)`` pair.

        Params that are neither a mapping nor a non-string sequence are
        dropped with a debug log.
        """
        if not isinstance(value, tuple):
            self.interface("message", message=value)
            return
        if len(value) != 2:
            msg = f"message must be a str or a (text, params) pair, got a {len(value)}-tuple"
            raise ValueError(msg)
        text, params = value
        if params is not None and not _valid_params(params):
            self.configuration.logger.debug(
                "Ignoring event option of unexpected type",
                option="message_params",
                type=type(params).__name__,
            )
            params = None
        self.interface("message", message=text, params=params)

    @property
    def backtrace(self) -> StackTrace | None:
        iface = self.interface("stacktrace")
        return iface if isinstance(iface, StackTrace) else None

    @backtrace.setter
    def backtrace(self, raw: Backtrace | TracebackType | Sequence[Any] | str | None) -> None:
        parsed = Backtrace.coerce(
            raw,
            in_app=self.configuration.in_app,
            project_root=self.configuration.project_root,
        )

        def build(iface: StackTrace) -> None:
            iface.frames = stacktrace_from_backtrace(parsed).frames
            self.culprit = get_culprit(iface.frames)

        self.interface("stacktrace", build=build)

    # -- serialization ------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Return the transport-ready document; ``None`` fields are omitted."""
        data: dict[str, Any] = {
            "event_id": self._id,
            "timestamp": _format_timestamp(self.timestamp),
            "level": self.level.value if self.level is not None else None,
            "platform": PLATFORM,
            "sdk": dict(SDK),
            "logger": self.logger,
            "culprit": self.culprit,
            "server_name": self.server_name,
            "release": self.release,
            "environment": self.environment,
            "fingerprint": list(self.fingerprint) if self.fingerprint is not None else None,
            "modules": dict(self.modules) if self.modules is not None else None,
            "extra": dict(self.extra),
            "tags": dict(self.tags),
            "user": dict(self.user),
            "contexts": dict(self.contexts),
            "breadcrumbs": copy.deepcopy(self.breadcrumbs),
            "message": self.message,
        }
        for alias, iface in self._interfaces.items():
            data[alias] = iface.to_document()
        return {key: value for key, value in data.items() if value is not None}

    def to_json(self) -> bytes:
        """Encode :meth:`to_document` with orjson; unknown values become strings."""
        return orjson.dumps(
            self.to_document(),
            default=str,
            option=orjson.OPT_NON_STR_KEYS,
        )
