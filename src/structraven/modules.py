"""Installed dependency versions.

The listing is produced by an external tool and parsed from its text output.
Collecting it is best effort: any failure leaves the event without
``modules``.
"""

from __future__ import annotations

import functools
import re
import subprocess
import sys
from collections.abc import Callable
from typing import Any

import structlog

log = structlog.get_logger("structraven")

_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "* name (1.2.3)" or "name (1.2.3)"
    re.compile(r"^\s*(?:\*\s+)?(?P<name>[^\s()*]+) \((?P<version>[^)\s]+)\)\s*$", re.MULTILINE),
    # "name==1.2.3" as printed by ``pip list --format=freeze``
    re.compile(r"^\s*(?P<name>[A-Za-z0-9][A-Za-z0-9._\-]*)==(?P<version>\S+)\s*$", re.MULTILINE),
)

PIP_LIST_COMMAND: tuple[str, ...] = (
    sys.executable,
    "-m",
    "pip",
    "list",
    "--format=freeze",
    "--disable-pip-version-check",
)


def parse_modules(text: str) -> dict[str, str] | None:
    """Extract ``name -> version`` pairs from *text*; ``None`` if there are none."""
    modules: dict[str, str] = {}
    for pattern in _PATTERNS:
        for match in pattern.finditer(text):
            modules.setdefault(match["name"], match["version"])
    return modules or None


@functools.lru_cache(maxsize=1)
def pip_list(timeout: float = 2.0) -> str:
    """Run ``pip list`` in a subprocess and return its output.

    A successful listing is cached for the life of the process; failures are
    retried on the next call.
    """
    result = subprocess.run(  # noqa: S603
        PIP_LIST_COMMAND,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )
    return result.stdout


def list_modules(
    lister: Callable[[], str] | None = None,
    *,
    timeout: float = 2.0,
    logger: Any = None,
) -> dict[str, str] | None:
    """Return installed dependency versions, or ``None`` if listing fails."""
    diagnostics = logger if logger is not None else log
    try:
        text = lister() if lister is not None else pip_list(timeout)
    except Exception as exc:
        diagnostics.debug("Module listing failed", error=repr(exc))
        return None
    if not isinstance(text, str):
        return None
    return parse_modules(text)
