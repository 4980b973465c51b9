"""Client configuration and diagnostic logging setup.

:class:`Configuration` carries the process-level settings an event reads at
construction time (server name, release, environment, exclusions, default
tags, in-app path rules).  It is passed explicitly to every entry point;
build it once near process start, typically with
:meth:`Configuration.from_env`.

:func:`configure_logging` wires structlog into stdlib :mod:`logging` so the
package's diagnostics come out as JSON (or colored console) lines:

- ``timestamp``: ISO 8601 in UTC.
- ``level``: lower-case level name.
- ``logger``: logger name, ``structraven`` for this package.
- ``message``: the log message.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
import sysconfig
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import orjson
import structlog
from structlog.contextvars import merge_contextvars

LOGGER_NAME = "structraven"


def _default_in_app_exclude() -> tuple[str, ...]:
    excludes = ["site-packages", "dist-packages"]
    stdlib = sysconfig.get_paths().get("stdlib")
    if stdlib:
        excludes.append(stdlib)
    return tuple(excludes)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass
class Configuration:
    """Settings read by :class:`~structraven.event.Event` at construction.

    Parameters
    ----------
    server_name:
        Host identifier attached to every event.
    release:
        Application version, usually a VCS revision.
    current_environment:
        Deployment environment such as ``production`` or ``staging``.
    excluded_exceptions:
        Exception class names that are never reported.  Both the bare
        qualified name (``"TimeoutError"``) and the dotted form including
        the module (``"myapp.errors.Busy"``) match.
    send_modules:
        If ``True``, collect installed distribution versions per event.
    tags:
        Default tags, the lowest-precedence source for ``event.tags``.
    project_root:
        Directory under which source files count as application code.
    in_app_exclude:
        Path fragments that mark a file as library code even under
        *project_root*.
    module_lister:
        Callable returning the raw dependency listing.  ``None`` uses
        ``pip list``.
    """

    server_name: str | None = field(default_factory=socket.gethostname)
    release: str | None = None
    current_environment: str = "default"
    excluded_exceptions: frozenset[str] = frozenset()
    send_modules: bool = True
    tags: dict[str, Any] = field(default_factory=dict)
    project_root: str = field(default_factory=os.getcwd)
    in_app_exclude: tuple[str, ...] = field(default_factory=_default_in_app_exclude)
    module_lister: Callable[[], str] | None = None
    logger: Any = field(
        default_factory=lambda: structlog.get_logger(LOGGER_NAME),
        repr=False,
        compare=False,
    )

    def in_app(self, path: str | None) -> bool:
        """Return ``True`` if *path* belongs to application code."""
        if not path:
            return False
        abs_path = os.path.abspath(path)
        if any(fragment and fragment in abs_path for fragment in self.in_app_exclude):
            return False
        root = os.path.abspath(self.project_root).rstrip(os.sep)
        return abs_path == root or abs_path.startswith(root + os.sep)

    def is_excluded(self, exc: BaseException) -> bool:
        """Return ``True`` if the class of *exc* is listed in ``excluded_exceptions``."""
        if not self.excluded_exceptions:
            return False
        exc_type = type(exc)
        names = {exc_type.__name__, exc_type.__qualname__}
        names.add(f"{exc_type.__module__}.{exc_type.__qualname__}")
        return not names.isdisjoint(self.excluded_exceptions)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> Configuration:
        """Build a configuration from ``STRUCTRAVEN_*`` environment variables.

        Reads:

        - ``STRUCTRAVEN_SERVER_NAME`` (default: host name)
        - ``STRUCTRAVEN_RELEASE``
        - ``STRUCTRAVEN_ENVIRONMENT`` (default: ``"default"``)
        - ``STRUCTRAVEN_SEND_MODULES`` (``"0"`` disables)
        - ``STRUCTRAVEN_EXCLUDED`` (comma-separated class names)

        Keyword *overrides* take precedence over the environment.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if env.get("STRUCTRAVEN_SERVER_NAME"):
            kwargs["server_name"] = env["STRUCTRAVEN_SERVER_NAME"]
        if env.get("STRUCTRAVEN_RELEASE"):
            kwargs["release"] = env["STRUCTRAVEN_RELEASE"]
        if env.get("STRUCTRAVEN_ENVIRONMENT"):
            kwargs["current_environment"] = env["STRUCTRAVEN_ENVIRONMENT"]
        kwargs["send_modules"] = _env_bool(env.get("STRUCTRAVEN_SEND_MODULES"), True)
        excluded = env.get("STRUCTRAVEN_EXCLUDED", "")
        kwargs["excluded_exceptions"] = frozenset(
            name.strip() for name in excluded.split(",") if name.strip()
        )
        kwargs.update(overrides)
        return cls(**kwargs)


def _orjson_serializer(obj: object, **_kw: object) -> str:
    """Serialize *obj* to a JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode()


def _to_logging_level(level_name: str) -> int:
    """Convert a human-readable level name to its :mod:`logging` constant."""
    upper_level = level_name.upper()
    if upper_level == "WARN":
        return logging.WARNING
    result = getattr(logging, upper_level, logging.INFO)
    return result if isinstance(result, int) else logging.INFO


def _stream_isatty(stream: Any) -> bool:
    """Check if *stream* is connected to a terminal."""
    try:
        result: bool = stream.isatty()
        return result
    except (AttributeError, ValueError):
        return False


def _build_shared_processors() -> list[structlog.types.Processor]:
    """Processor chain shared by structlog loggers and foreign stdlib records."""
    return [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.EventRenamer("message"),
    ]


def configure_logging(
    *,
    level: str = "INFO",
    json_logs: bool = True,
    stream: Any = None,
    clear_handlers: bool = True,
) -> None:
    """Configure structlog and the root logger.

    Parameters
    ----------
    level:
        Minimum log level (e.g. ``"DEBUG"``, ``"INFO"``).
    json_logs:
        ``True`` for JSON output, ``False`` for console output.
    stream:
        Output stream.  Defaults to ``sys.stderr``.
    clear_handlers:
        If ``True`` (default), remove existing root handlers first.
    """
    if stream is None:
        stream = sys.stderr

    shared_processors = _build_shared_processors()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(_to_logging_level(level)),
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer(serializer=_orjson_serializer)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=_stream_isatty(stream),
            event_key="message",
        )

    formatter_processors: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        formatter_processors.append(structlog.processors.format_exc_info)
    formatter_processors.append(renderer)

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=formatter_processors,
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    if clear_handlers:
        root.handlers.clear()
    root.setLevel(_to_logging_level(level))

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    root.addHandler(handler)
