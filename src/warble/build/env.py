"""Build-time environment for compiled functions.

Values are folded together, later sources winning:

1. ``<site>/.env``
2. ``<site>/.env.<config env>``
3. the process environment
4. the reserved keys ``WARBLE_ENV`` and ``PUBLIC_DIR``, which no other
   source may override

``WARBLE_ENV`` defaults to ``production`` or ``development`` depending on
the build mode.  The config env is ``WARBLE_ACTIVE_ENV`` when set (e.g.
``staging``), else ``WARBLE_ENV``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import dotenv_values

if TYPE_CHECKING:
    from warble.reporter import Reporter

logger = logging.getLogger("warble.build")

RESERVED_KEYS = ("WARBLE_ENV", "PUBLIC_DIR")


def env_file_names(config_env: str) -> tuple[str, str]:
    return (".env", f".env.{config_env}")


def load_build_env(
    site_dir: str | Path,
    *,
    production: bool,
    public_dir: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    reporter: Reporter | None = None,
) -> dict[str, str]:
    """Collect the build-time constants for a build.

    Args:
        site_dir: Site root holding the ``.env`` files.
        production: Selects the default ``WARBLE_ENV``.
        public_dir: Value of ``PUBLIC_DIR`` (default ``<site>/public``).
        environ: Process environment (default ``os.environ``).
        reporter: Receives errors for env files that exist but cannot
            be read.  Missing files are not errors.

    Returns:
        Flat ``name -> value`` mapping.
    """
    site = Path(site_dir)
    environ = os.environ if environ is None else environ

    warble_env = environ.get("WARBLE_ENV") or ("production" if production else "development")
    config_env = environ.get("WARBLE_ACTIVE_ENV") or warble_env

    values: dict[str, str] = {}
    for name in env_file_names(config_env):
        values.update(_read_env_file(site / name, reporter))

    values.update(environ)
    values["WARBLE_ENV"] = warble_env
    values["PUBLIC_DIR"] = str(Path(public_dir) if public_dir is not None else site / "public")
    return values


def _read_env_file(path: Path, reporter: Reporter | None) -> dict[str, str]:
    if not path.is_file():
        return {}
    try:
        parsed = dotenv_values(path, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        message = f"There was a problem processing the .env file ({path})"
        if reporter is not None:
            reporter.error(message, exc)
        else:
            logger.error("%s: %s", message, exc)
        return {}
    return {key: value for key, value in parsed.items() if value is not None}
