"""Per-request context and the reverse-merge rule.

Integrations fill a :class:`Context` while handling a request; events copy
from it at construction.  Merging into an event never overwrites a key the
event already holds.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def reverse_merge(
    target: dict[str, Any],
    *sources: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Copy keys from *sources* into *target* where *target* lacks them.

    Sources are applied in order, so an earlier source wins over a later one
    and *target* wins over all of them.  Sources are never mutated.
    """
    for source in sources:
        if not source:
            continue
        for key, value in list(source.items()):
            if key not in target:
                target[key] = value
    return target


@dataclass
class Context:
    """Mutable bag of request-scoped data: ``contexts``, ``user``, ``extra``, ``tags``."""

    contexts: dict[str, Any] = field(default_factory=dict)
    user: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, Any] = field(default_factory=dict)

    def merge(
        self,
        *,
        contexts: Mapping[str, Any] | None = None,
        user: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
        tags: Mapping[str, Any] | None = None,
    ) -> Context:
        """Update the maps in place; later writes win.  Returns ``self``."""
        if contexts:
            self.contexts.update(contexts)
        if user:
            self.user.update(user)
        if extra:
            self.extra.update(extra)
        if tags:
            self.tags.update(tags)
        return self

    def clear(self) -> None:
        self.contexts.clear()
        self.user.clear()
        self.extra.clear()
        self.tags.clear()
