"""Warble exception hierarchy.

Shared across discovery, the build orchestrator, the router and the
executor so every module raises and catches the same types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from warble.build.compiler import Diagnostic


class WarbleError(Exception):
    """Base for all warble-specific errors."""


class ConfigurationError(WarbleError):
    """Raised when configuration or a route pattern is invalid."""


class DiscoveryError(WarbleError):
    """Scanning one source root, or one file in it, failed.

    Non-fatal: the root (or just the file, when ``path`` is set)
    contributes no functions for this cycle and everything else is still
    discovered.
    """

    def __init__(self, root_id: str, cause: BaseException, *, path: str | None = None) -> None:
        self.root_id = root_id
        self.cause = cause
        self.path = path
        if path is None:
            super().__init__(f"Could not discover functions for {root_id!r}: {cause}")
        else:
            super().__init__(f"Skipping {path} in {root_id!r}: {cause}")


class CompileError(WarbleError):
    """The compiler reported errors.

    Fatal in one-shot (production) builds, advisory in watch mode.
    """

    def __init__(self, diagnostics: tuple[Diagnostic, ...]) -> None:
        self.diagnostics = diagnostics
        count = len(diagnostics)
        noun = "error" if count == 1 else "errors"
        super().__init__(f"Failed to compile functions ({count} {noun}).")


class LoadError(WarbleError):
    """A compiled artifact is missing or does not export an invocable."""

    def __init__(self, source_path: str, detail: str) -> None:
        self.source_path = source_path
        super().__init__(detail)


class ExecutionError(WarbleError):
    """A function body raised while handling a request."""

    def __init__(self, source_path: str, cause: BaseException) -> None:
        self.source_path = source_path
        self.cause = cause
        super().__init__(str(cause))


class RestartError(WarbleError):
    """Stopping or starting a watch handle failed during a restart.

    Fatal to the watch session.
    """
