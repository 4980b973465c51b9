"""Package errors and per-exception context.

Exceptions derived from :class:`StructravenError` are never turned into
events, which keeps a failing reporter from reporting itself.
"""

from __future__ import annotations

from typing import Any, TypeVar

_E = TypeVar("_E", bound=BaseException)

_CONTEXT_ATTR = "_structraven_context"


class StructravenError(Exception):
    """Base class for errors raised by structraven itself."""


def add_exception_context(exc: _E, **data: Any) -> _E:
    """Attach structured context to *exc* and return it.

    The context ends up in the event's ``extra`` map, below anything the
    event or the request context already set::

        raise add_exception_context(ValueError("bad row"), row_id=42)
    """
    existing: dict[str, Any] = getattr(exc, _CONTEXT_ATTR, None) or {}
    setattr(exc, _CONTEXT_ATTR, {**existing, **data})
    return exc


def get_exception_context(exc: BaseException) -> dict[str, Any]:
    """Return a copy of the context attached to *exc*."""
    context = getattr(exc, _CONTEXT_ATTR, None)
    if not isinstance(context, dict):
        return {}
    return dict(context)
