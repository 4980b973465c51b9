"""Backtrace parsing.

Turns raw backtrace entries into :class:`Line` records.  An entry is either
a :class:`traceback.FrameSummary` or a text line in one of these forms::

    File "/srv/app/views.py", line 42, in index
    index at /srv/app/views.py:42:7
    /srv/app/views.py:42:7 in 'index'

Text that matches none of them (source excerpts, ``Traceback (most recent
call last):`` headers, ``^^^`` markers) is skipped.

Raw entries are ordered innermost call first; :meth:`Backtrace.from_traceback`
reverses Python's outermost-first order to match.
"""

from __future__ import annotations

import os
import re
import traceback
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from types import TracebackType
from typing import Any

InAppPredicate = Callable[[str], bool]

# A path needs a separator or an extension, so "12:30:45" is not read as a frame.
_PATH = r"(?P<file>\S*?[/\\.]\S*?)"

_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'^\s*File "(?P<file>[^"]+)", line (?P<number>\d+)(?:, in (?P<method>.+?))?\s*$'),
    re.compile(
        r"^\s*(?P<method>\S.*?) at " + _PATH + r":(?P<number>\d+)(?::(?P<column>\d+))?\s*$"
    ),
    re.compile(
        r"^\s*" + _PATH + r":(?P<number>\d+)(?::(?P<column>\d+))?(?: in (?P<method>.+?))?\s*$"
    ),
)


def _never_in_app(_path: str) -> bool:
    return False


def relative_path(path: str, project_root: str | None) -> str:
    """Return *path* relative to *project_root* when it lies below it."""
    if not project_root:
        return path
    root = os.path.abspath(project_root).rstrip(os.sep) + os.sep
    abs_path = os.path.abspath(path)
    if abs_path.startswith(root):
        return abs_path[len(root) :]
    return path


@dataclass(frozen=True)
class Line:
    """A single parsed backtrace entry."""

    file: str
    number: int | None = None
    method: str | None = None
    column: int | None = None
    in_app: bool = False
    filename: str | None = None

    @classmethod
    def parse(
        cls,
        text: str,
        *,
        in_app: InAppPredicate = _never_in_app,
        project_root: str | None = None,
    ) -> Line | None:
        """Parse one text line, returning ``None`` if it matches no known form."""
        for pattern in _PATTERNS:
            match = pattern.match(text)
            if match is None:
                continue
            groups = match.groupdict()
            file = groups["file"]
            method = groups.get("method")
            if method:
                method = method.strip().strip("'\"`")
            column = groups.get("column")
            return cls(
                file=file,
                number=int(groups["number"]),
                method=method or None,
                column=int(column) if column else None,
                in_app=in_app(file),
                filename=relative_path(file, project_root),
            )
        return None

    @classmethod
    def from_frame_summary(
        cls,
        summary: traceback.FrameSummary,
        *,
        in_app: InAppPredicate = _never_in_app,
        project_root: str | None = None,
    ) -> Line:
        # FrameSummary.colno (3.11+) is 0-based; backtrace columns are 1-based.
        colno = getattr(summary, "colno", None)
        return cls(
            file=summary.filename,
            number=summary.lineno,
            method=summary.name,
            column=colno + 1 if colno is not None else None,
            in_app=in_app(summary.filename),
            filename=relative_path(summary.filename, project_root),
        )


@dataclass(frozen=True)
class Backtrace:
    """Parsed backtrace, innermost call first."""

    lines: tuple[Line, ...] = ()

    def __iter__(self) -> Iterator[Line]:
        return iter(self.lines)

    @classmethod
    def parse(
        cls,
        raw: Iterable[Any],
        *,
        in_app: InAppPredicate | None = None,
        project_root: str | None = None,
    ) -> Backtrace:
        """Parse *raw* entries (text lines or frame summaries), skipping unknown ones."""
        predicate = in_app or _never_in_app
        lines: list[Line] = []
        for entry in raw:
            if isinstance(entry, traceback.FrameSummary):
                lines.append(
                    Line.from_frame_summary(entry, in_app=predicate, project_root=project_root)
                )
                continue
            for text in str(entry).splitlines():
                line = Line.parse(text, in_app=predicate, project_root=project_root)
                if line is not None:
                    lines.append(line)
        return cls(lines=tuple(lines))

    @classmethod
    def from_traceback(
        cls,
        tb: TracebackType | None,
        *,
        in_app: InAppPredicate | None = None,
        project_root: str | None = None,
    ) -> Backtrace:
        """Build a backtrace from a live traceback object."""
        summaries = traceback.extract_tb(tb) if tb is not None else []
        return cls.parse(reversed(summaries), in_app=in_app, project_root=project_root)

    @classmethod
    def coerce(
        cls,
        value: Backtrace | TracebackType | Iterable[Any] | None,
        *,
        in_app: InAppPredicate | None = None,
        project_root: str | None = None,
    ) -> Backtrace:
        """Accept a parsed backtrace, a traceback object, or raw entries."""
        if isinstance(value, Backtrace):
            return value
        if value is None or isinstance(value, TracebackType):
            return cls.from_traceback(value, in_app=in_app, project_root=project_root)
        if isinstance(value, str):
            value = value.splitlines()
        return cls.parse(value, in_app=in_app, project_root=project_root)
