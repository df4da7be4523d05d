"""Functions configuration.

FunctionsConfig is a frozen dataclass: immutable after creation,
IDE-autocompletable, no string-key dict lookups.
"""

from dataclasses import dataclass
from pathlib import Path

from warble.errors import ConfigurationError

# Source root id of the site's own functions directory
SITE_ROOT_ID = "default-site-plugin"


@dataclass(frozen=True, slots=True)
class Plugin:
    """An external function provider.

    Attributes:
        name: Plugin name. Its functions live under ``src/api/<name>/``
            and are routed under ``<prefix>/<name>/``.
        resolve: Directory the plugin is installed in.
    """

    name: str
    resolve: str | Path


@dataclass(frozen=True, slots=True)
class FunctionsConfig:
    """Functions configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = FunctionsConfig(site_dir="mysite", production=True)
    """

    # Site layout
    site_dir: str | Path = "."
    functions_dir: str = "src/api"
    cache_dir: str = ".cache"

    # Routing
    prefix: str = "/api"

    # External function providers, in precedence order (after the site)
    plugins: tuple[Plugin, ...] = ()
    ignored_plugins: tuple[str, ...] = ("internal-plugin",)  # Markers matched against Plugin.resolve

    # Build
    production: bool = False
    target: str = "3.13"  # Interpreter version the compiler parses for
    source_maps: bool | None = None  # None = on in development, off in production

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 0  # 0 = auto-detect from CPU count (production only)
    log_level: str = "info"

    def __post_init__(self) -> None:
        if not self.prefix.startswith("/") or self.prefix.endswith("/"):
            msg = f"prefix must start with '/' and not end with one, got {self.prefix!r}"
            raise ConfigurationError(msg)

    @property
    def site_path(self) -> Path:
        return Path(self.site_dir).resolve()

    @property
    def compiled_dir(self) -> Path:
        """Directory compiled functions and the manifest are written to."""
        return self.site_path / self.cache_dir / "functions"

    @property
    def manifest_path(self) -> Path:
        return self.compiled_dir / "manifest.json"

    @property
    def compiler_cache_dir(self) -> Path:
        return self.site_path / self.cache_dir / "compiler"

    @property
    def public_dir(self) -> Path:
        return self.site_path / "public"

    @property
    def stage(self) -> str:
        return "functions-production" if self.production else "functions-development"

    @property
    def emit_source_maps(self) -> bool:
        if self.source_maps is None:
            return not self.production
        return self.source_maps
