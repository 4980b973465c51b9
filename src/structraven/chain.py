"""Exception chain unwinding and culprit selection.

Python links exceptions through ``__cause__`` (``raise ... from ...``) and
``__context__`` (raising inside an ``except`` block).  The walk follows the
same link the interpreter prints, stops at the first exception seen twice,
and reports the chain root cause first.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from structraven.backtrace import Backtrace, InAppPredicate
from structraven.interfaces import SingleException, StackFrame, StackTrace


def cause_of(exc: BaseException) -> BaseException | None:
    """Return the exception that *exc* was raised from, if any."""
    cause = exc.__cause__
    if cause is None and not exc.__suppress_context__:
        cause = exc.__context__
    return cause


def walk_chain(exc: BaseException) -> list[BaseException]:
    """Return the distinct exceptions linked from *exc*, root cause first.

    Identity decides distinctness: two exceptions with the same message are
    both kept, and a cycle ends the walk.
    """
    exceptions = [exc]
    # The ids stay valid because every visited exception is held in the list.
    visited = {id(exc)}
    current = cause_of(exc)
    while current is not None and id(current) not in visited:
        exceptions.append(current)
        visited.add(id(current))
        current = cause_of(current)
    exceptions.reverse()
    return exceptions


def safe_str(exc: BaseException) -> str:
    try:
        return str(exc)
    except Exception:
        return f"<unprintable {type(exc).__name__}>"


def exception_module(exc_type: type[BaseException]) -> str:
    """Namespace of an exception type, empty for builtins."""
    module = getattr(exc_type, "__module__", None) or ""
    return "" if module == "builtins" else module


def stacktrace_from_backtrace(backtrace: Backtrace) -> StackTrace:
    """Build a stack trace with frames ordered innermost-last."""
    frames = tuple(
        StackFrame(
            abs_path=line.file,
            filename=line.filename,
            function=line.method,
            lineno=line.number,
            colno=line.column,
            in_app=line.in_app,
        )
        for line in reversed(backtrace.lines)
    )
    return StackTrace(frames=frames)


def build_exception_chain(
    exc: BaseException,
    *,
    in_app: InAppPredicate | None = None,
    project_root: str | None = None,
    leaf_backtrace: Backtrace | None = None,
    on_stacktrace: Callable[[StackTrace], None] | None = None,
) -> list[SingleException]:
    """Describe the chain ending in *exc*, root cause first.

    Parameters
    ----------
    in_app, project_root:
        Passed to the backtrace parser.
    leaf_backtrace:
        Used for *exc* when it carries no traceback (it was never raised).
    on_stacktrace:
        Called with each stack trace as it is attached, in chain order.

    A traceback object shared by several exceptions is attached to the first
    of them only.
    """
    seen_tracebacks: set[int] = set()
    values: list[SingleException] = []
    for current in walk_chain(exc):
        exc_type = type(current)
        tb = current.__traceback__
        stacktrace: StackTrace | None = None
        if tb is not None:
            if id(tb) not in seen_tracebacks:
                seen_tracebacks.add(id(tb))
                stacktrace = stacktrace_from_backtrace(
                    Backtrace.from_traceback(tb, in_app=in_app, project_root=project_root)
                )
        elif current is exc and leaf_backtrace is not None:
            stacktrace = stacktrace_from_backtrace(leaf_backtrace)

        if stacktrace is not None and on_stacktrace is not None:
            on_stacktrace(stacktrace)

        values.append(
            SingleException(
                type=exc_type.__qualname__,
                value=safe_str(current),
                module=exception_module(exc_type),
                stacktrace=stacktrace,
            )
        )
    return values


def get_culprit(frames: Sequence[StackFrame]) -> str | None:
    """Describe the most relevant frame as ``"<file> in <function> at line <n>"``.

    The innermost in-app frame is preferred, then the innermost frame.
    Absent parts are left out.
    """
    if not frames:
        return None
    frame = next((f for f in reversed(frames) if f.in_app), frames[-1])
    parts: list[str] = []
    filename = frame.filename or frame.abs_path
    if filename is not None:
        parts.append(filename)
    if frame.function is not None:
        parts.extend(("in", frame.function))
    if frame.lineno is not None:
        parts.extend(("at line", str(frame.lineno)))
    return " ".join(parts) or None
