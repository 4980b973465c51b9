"""structraven: structured error events for a remote collector, built on structlog."""

from structraven.backtrace import Backtrace, Line
from structraven.breadcrumbs import Breadcrumb, BreadcrumbBuffer
from structraven.chain import build_exception_chain, get_culprit, walk_chain
from structraven.config import Configuration, configure_logging
from structraven.context import Context, reverse_merge
from structraven.errors import StructravenError, add_exception_context, get_exception_context
from structraven.event import DEFAULT_FINGERPRINT, Event, Severity
from structraven.interfaces import (
    ExceptionChain,
    Http,
    Message,
    SingleException,
    StackFrame,
    StackTrace,
)
from structraven.processors import BreadcrumbProcessor, CaptureProcessor
from structraven.version import __version__

__all__ = [
    "DEFAULT_FINGERPRINT",
    "Backtrace",
    "Breadcrumb",
    "BreadcrumbBuffer",
    "BreadcrumbProcessor",
    "CaptureProcessor",
    "Configuration",
    "Context",
    "Event",
    "ExceptionChain",
    "Http",
    "Line",
    "Message",
    "Severity",
    "SingleException",
    "StackFrame",
    "StackTrace",
    "StructravenError",
    "__version__",
    "add_exception_context",
    "build_exception_chain",
    "configure_logging",
    "get_culprit",
    "get_exception_context",
    "reverse_merge",
    "walk_chain",
]
