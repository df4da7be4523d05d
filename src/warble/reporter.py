"""Structured reporting for builds and function execution.

Every error in warble goes through a ``Reporter``.  It wraps a stdlib
logger and adds:

- banner-formatted compiler diagnostics::

      -- Function Errors ----------------------------------------------
      src/api/hello.py:3:8: error: invalid syntax
      -----------------------------------------------------------------

- configurable traceback verbosity for exceptions, controlled by the
  ``WARBLE_TRACEBACK`` environment variable (compact/full/minimal)
- an activity timer for long-running steps
"""

from __future__ import annotations

import logging
import os
import time
import traceback as _traceback
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from warble.build.compiler import Diagnostic

# Width of the terminal banner
_BANNER_WIDTH = 65


def _is_app_frame(filename: str) -> bool:
    """True if the frame is from user code (not stdlib/site-packages/warble)."""
    if "site-packages" in filename:
        return False
    if filename.startswith("<"):
        return False
    if f"{os.sep}warble{os.sep}" in filename:
        return False
    stdlib_prefix = os.path.dirname(os.__file__)
    return not filename.startswith(stdlib_prefix)


def format_compact_traceback(exc: BaseException) -> str:
    """Format an error with user frames only.

    Falls back to the last three frames when no user frame is found.
    """
    parts: list[str] = []

    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    app_frames = [f for f in frames if _is_app_frame(f.filename)]
    display_frames = app_frames if app_frames else frames[-3:]

    parts.append(f"{type(exc).__name__}: {exc}")

    if display_frames:
        parts.append("  Trace (app frames):")
        for frame in display_frames[-5:]:
            parts.append(f"    {frame.filename}:{frame.lineno} in {frame.name}")
            if frame.line:
                parts.append(f"      {frame.line.strip()}")

    return "\n".join(parts)


def format_minimal_error(exc: BaseException) -> str:
    """One-line error summary."""
    tb = exc.__traceback__
    frames = _traceback.extract_tb(tb) if tb else []
    last = frames[-1] if frames else None
    location = f" at {last.filename}:{last.lineno}" if last else ""
    return f"{type(exc).__name__}{location}: {exc}"


def format_diagnostics(title: str, diagnostics: Iterable[Diagnostic]) -> str:
    """Render diagnostics inside a titled banner."""
    parts = [f"-- {title} {'-' * max(_BANNER_WIDTH - len(title) - 4, 3)}"]
    parts.extend(d.format() for d in diagnostics)
    parts.append("-" * _BANNER_WIDTH)
    return "\n".join(parts)


class Reporter:
    """Structured reporter over a stdlib logger.

    Usage::

        reporter = Reporter()
        with reporter.activity("Compiling functions"):
            ...
        reporter.error("Could not read .env", exc)
    """

    __slots__ = ("logger",)

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("warble")

    def verbose(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def success(self, message: str) -> None:
        self.logger.info("success %s", message)

    def warn(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        """Report an error, with the exception formatted per ``WARBLE_TRACEBACK``."""
        self._log(logging.ERROR, message, exc)

    def panic(self, message: str, exc: BaseException | None = None) -> None:
        """Report a fatal error.  Callers decide how the process stops."""
        self._log(logging.CRITICAL, message, exc)

    def _log(self, level: int, message: str, exc: BaseException | None) -> None:
        if exc is None:
            self.logger.log(level, message)
            return

        style = os.environ.get("WARBLE_TRACEBACK", "compact").lower()
        if style == "full":
            self.logger.log(level, message, exc_info=exc)
        elif style == "minimal":
            self.logger.log(level, "%s: %s", message, format_minimal_error(exc))
        else:
            self.logger.log(level, "%s\n%s", message, format_compact_traceback(exc))

    def diagnostics(
        self,
        errors: Iterable[Diagnostic] = (),
        warnings: Iterable[Diagnostic] = (),
    ) -> None:
        """Report compiler errors and warnings as banners."""
        errors = tuple(errors)
        warnings = tuple(warnings)
        if warnings:
            self.logger.warning("%s", format_diagnostics("Function Warnings", warnings))
        if errors:
            self.logger.error("%s", format_diagnostics("Function Errors", errors))

    @contextmanager
    def activity(self, name: str) -> Iterator[None]:
        """Time a step and log its duration when it finishes."""
        self.logger.info("%s ...", name)
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.logger.info("%s - %.3fs", name, elapsed)
