"""
kiln.config.models - Typed, resolved configuration

The bundler core only ever sees ``BundlerConfig``: every path absolute,
every value validated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kiln.config.defaults import KNOWN_FEATURES
from kiln.errors import ConfigError

MODES = ("development", "production")


def _absolute(base: Path, value: str | Path) -> Path:
    p = Path(value).expanduser()
    return (p if p.is_absolute() else base / p).resolve()


def _normalize_public_path(value: str) -> str:
    """Return ``value`` as ``/segment/`` (or ``/`` for the root)."""
    stripped = value.strip().strip("/")
    return f"/{stripped}/" if stripped else "/"


@dataclass(frozen=True)
class DevServerConfig:
    """Settings for ``kiln serve``.

    Attributes:
        content_base: Directory for everything outside the public path.
        host: Interface to bind.
        port: TCP port to listen on.
        hot_reload: Inject the live-reload client and push updates.
        poll_interval: Seconds between file system polls.
        debounce: Quiet period in seconds before a change is reported.
    """

    content_base: Path
    host: str = "127.0.0.1"
    port: int = 8080
    hot_reload: bool = True
    poll_interval: float = 0.1
    debounce: float = 0.1


@dataclass(frozen=True)
class BundlerConfig:
    """Resolved configuration handed to the bundler and the dev session.

    Attributes:
        root: Project root; bundle ids are rendered relative to it.
        entry_path: Entry module.
        output_path: Directory receiving the bundle.
        output_filename: Bundle file name.
        public_path: URL prefix the output directory is served under.
        mode: "development" or "production".
        features: Enabled optional features (currently only "clean").
        aliases: Specifier prefix -> absolute directory.
        extensions: Extensions probed when a specifier omits one.
        module_dirs: Package directory names searched for bare specifiers.
        dev_server: Dev server settings.
    """

    root: Path
    entry_path: Path
    output_path: Path
    output_filename: str
    dev_server: DevServerConfig
    public_path: str = "/"
    mode: str = "development"
    features: tuple[str, ...] = ()
    aliases: dict[str, Path] = field(default_factory=dict)
    extensions: tuple[str, ...] = (".js", ".mjs")
    module_dirs: tuple[str, ...] = ("node_modules",)

    @property
    def artifact_path(self) -> Path:
        """Full path of the bundle file."""
        return self.output_path / self.output_filename

    @property
    def is_production(self) -> bool:
        return self.mode == "production"

    def has_feature(self, name: str) -> bool:
        return name in self.features

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> BundlerConfig:
        """Create a BundlerConfig from a (merged) configuration dict.

        Args:
            data: Dict shaped like ``DEFAULT_CONFIG``.
            base_dir: Directory relative paths resolve against. Defaults to
                the ``_base_dir`` key, then the current directory.

        Returns:
            Validated BundlerConfig.

        Raises:
            ConfigError: For unknown modes or features, or malformed values.
        """
        base = Path(base_dir or data.get("_base_dir") or Path.cwd()).resolve()

        mode = str(data.get("mode", "development"))
        if mode not in MODES:
            raise ConfigError(f"Unknown mode '{mode}' (expected one of: {', '.join(MODES)})")

        features = data.get("features", [])
        if isinstance(features, str):
            features = [features]
        if not isinstance(features, (list, tuple)):
            raise ConfigError(f"features must be a list of names, got {features!r}")
        unknown = [str(f) for f in features if f not in KNOWN_FEATURES]
        if unknown:
            raise ConfigError(f"Unknown feature(s): {', '.join(unknown)}")

        entry = data.get("entry", {})
        output = data.get("output", {})
        server = data.get("dev_server", {})
        resolve = data.get("resolve", {})

        if not entry.get("path"):
            raise ConfigError("entry.path is required")
        filename = output.get("filename", "")
        if not filename or "/" in filename or "\\" in filename:
            raise ConfigError(f"output.filename must be a plain file name, got '{filename}'")

        aliases = resolve.get("alias", {})
        if not isinstance(aliases, dict):
            raise ConfigError("resolve.alias must be a table")

        extensions = resolve.get("extensions", [".js", ".mjs"])
        bad_ext = [e for e in extensions if not str(e).startswith(".")]
        if bad_ext:
            raise ConfigError(f"resolve.extensions must start with '.': {', '.join(bad_ext)}")

        try:
            port = int(server.get("port", 8080))
            poll_interval = float(server.get("poll_interval", 0.1))
            debounce = float(server.get("debounce", 0.1))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid dev_server value: {e}") from e
        if not 0 <= port <= 65535:
            raise ConfigError(f"dev_server.port out of range: {port}")

        return cls(
            root=base,
            entry_path=_absolute(base, entry["path"]),
            output_path=_absolute(base, output.get("path", "dist")),
            output_filename=filename,
            public_path=_normalize_public_path(str(output.get("public_path", "/"))),
            mode=mode,
            features=tuple(features),
            aliases={str(k): _absolute(base, v) for k, v in aliases.items()},
            extensions=tuple(str(e) for e in extensions),
            module_dirs=tuple(resolve.get("module_dirs", ["node_modules"])),
            dev_server=DevServerConfig(
                content_base=_absolute(base, server.get("content_base", "public")),
                host=str(server.get("host", "127.0.0.1")),
                port=port,
                hot_reload=bool(server.get("hot_reload", True)),
                poll_interval=poll_interval,
                debounce=debounce,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view for ``kiln config show``."""
        return {
            "root": str(self.root),
            "mode": self.mode,
            "features": list(self.features),
            "entry": {"path": str(self.entry_path)},
            "output": {
                "path": str(self.output_path),
                "filename": self.output_filename,
                "public_path": self.public_path,
            },
            "dev_server": {
                "content_base": str(self.dev_server.content_base),
                "host": self.dev_server.host,
                "port": self.dev_server.port,
                "hot_reload": self.dev_server.hot_reload,
                "poll_interval": self.dev_server.poll_interval,
                "debounce": self.dev_server.debounce,
            },
            "resolve": {
                "extensions": list(self.extensions),
                "module_dirs": list(self.module_dirs),
                "alias": {k: str(v) for k, v in self.aliases.items()},
            },
        }
