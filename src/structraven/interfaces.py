"""Interfaces: independently serializable sub-documents of an event.

The set is closed.  Each kind has a registry ``name`` used by
:meth:`Event.interface <structraven.event.Event.interface>` and a
``sentry_alias`` under which it appears in the serialized event; the two
differ for ``message`` (``logentry``) and ``http`` (``request``).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar


def _compact(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if v is not None}


class Interface:
    """Base class of all interface kinds."""

    name: ClassVar[str]
    sentry_alias: ClassVar[str]

    def to_document(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class Message(Interface):
    """A log message template and its positional (or mapping) parameters."""

    name: ClassVar[str] = "message"
    sentry_alias: ClassVar[str] = "logentry"

    message: str = ""
    params: Sequence[Any] | Mapping[str, Any] | None = None

    @property
    def unformatted_message(self) -> str:
        return self.message

    @property
    def formatted(self) -> str:
        """The message with ``%``-style parameters applied, or the template on failure."""
        if not self.params:
            return self.message
        args: Any = self.params if isinstance(self.params, Mapping) else tuple(self.params)
        try:
            return self.message % args
        except (TypeError, ValueError, KeyError):
            return self.message

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"message": self.message}
        if self.params:
            doc["params"] = (
                dict(self.params) if isinstance(self.params, Mapping) else list(self.params)
            )
            doc["formatted"] = self.formatted
        return doc


@dataclass(frozen=True)
class StackFrame:
    """One call site."""

    abs_path: str | None = None
    filename: str | None = None
    function: str | None = None
    lineno: int | None = None
    colno: int | None = None
    in_app: bool = False

    def to_document(self) -> dict[str, Any]:
        return _compact(
            {
                "abs_path": self.abs_path,
                "filename": self.filename,
                "function": self.function,
                "lineno": self.lineno,
                "colno": self.colno,
                "in_app": self.in_app,
            }
        )


@dataclass
class StackTrace(Interface):
    """Frames ordered innermost-last.

    ``frames`` is a tuple; a trace is replaced as a whole, never edited.
    """

    name: ClassVar[str] = "stacktrace"
    sentry_alias: ClassVar[str] = "stacktrace"

    frames: tuple[StackFrame, ...] = ()

    def __post_init__(self) -> None:
        self.frames = tuple(self.frames)

    def to_document(self) -> dict[str, Any]:
        return {"frames": [frame.to_document() for frame in self.frames]}


@dataclass
class SingleException:
    """Descriptor of one exception in a chain."""

    type: str
    value: str = ""
    module: str = ""
    stacktrace: StackTrace | None = None

    def to_document(self) -> dict[str, Any]:
        return _compact(
            {
                "type": self.type,
                "value": self.value,
                "module": self.module,
                "stacktrace": self.stacktrace.to_document() if self.stacktrace else None,
            }
        )


@dataclass
class ExceptionChain(Interface):
    """Exceptions ordered root cause first, the raised exception last."""

    name: ClassVar[str] = "exception"
    sentry_alias: ClassVar[str] = "exception"

    values: list[SingleException] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {"values": [value.to_document() for value in self.values]}


@dataclass
class Http(Interface):
    """The HTTP request being served when the event happened."""

    name: ClassVar[str] = "http"
    sentry_alias: ClassVar[str] = "request"

    url: str | None = None
    method: str | None = None
    query_string: str | None = None
    data: Any = None
    cookies: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return _compact(
            {
                "url": self.url,
                "method": self.method,
                "query_string": self.query_string,
                "data": self.data,
                "cookies": self.cookies,
                "headers": dict(self.headers) if self.headers else None,
                "env": dict(self.env) if self.env else None,
            }
        )


INTERFACES: dict[str, type[Interface]] = {
    cls.name: cls for cls in (Message, ExceptionChain, StackTrace, Http)
}


def get_interface(name: str) -> type[Interface]:
    """Look up an interface class by registry name."""
    try:
        return INTERFACES[name]
    except KeyError:
        msg = f"Unknown interface {name!r}; expected one of {sorted(INTERFACES)}"
        raise KeyError(msg) from None
