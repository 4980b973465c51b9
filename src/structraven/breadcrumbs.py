"""Bounded trail of breadcrumbs recorded before an event.

Integrations write to a :class:`BreadcrumbBuffer`; events only read its
``size`` and :meth:`BreadcrumbBuffer.to_document` snapshot.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Breadcrumb:
    """A single trail entry."""

    message: str | None = None
    category: str | None = None
    level: str = "info"
    type: str = "default"
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "timestamp": round(self.timestamp.timestamp(), 6),
            "type": self.type,
            "category": self.category,
            "message": self.message,
            "level": self.level,
            "data": dict(self.data) if self.data else None,
        }
        return {k: v for k, v in doc.items() if v is not None}


class BreadcrumbTrail(Protocol):
    """The read side of a breadcrumb store, as consumed by events."""

    @property
    def size(self) -> int: ...

    def to_document(self) -> dict[str, Any]: ...


class BreadcrumbBuffer:
    """Thread-safe ring buffer of :class:`Breadcrumb` entries.

    Parameters
    ----------
    size:
        Maximum number of entries kept; the oldest entry is dropped first.
    """

    def __init__(self, size: int = 100) -> None:
        if size < 1:
            msg = f"size must be >= 1, got {size}"
            raise ValueError(msg)
        self._buffer: deque[Breadcrumb] = deque(maxlen=size)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen or 0

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._buffer)

    def __len__(self) -> int:
        return self.size

    def __iter__(self) -> Iterator[Breadcrumb]:
        with self._lock:
            snapshot = list(self._buffer)
        return iter(snapshot)

    def record(
        self,
        crumb: Breadcrumb | None = None,
        *,
        build: Callable[[Breadcrumb], None] | None = None,
        **fields: Any,
    ) -> Breadcrumb:
        """Append a breadcrumb and return it.

        Pass a ready *crumb*, keyword *fields* for a new one, or a *build*
        callback that populates the new crumb in place before it is stored.
        """
        if crumb is None:
            crumb = Breadcrumb(**fields)
        if build is not None:
            build(crumb)
        with self._lock:
            self._buffer.append(crumb)
        return crumb

    def peek(self) -> Breadcrumb | None:
        """Return the most recent breadcrumb, if any."""
        with self._lock:
            return self._buffer[-1] if self._buffer else None

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def to_document(self) -> dict[str, Any]:
        return {"values": [crumb.to_document() for crumb in self]}
