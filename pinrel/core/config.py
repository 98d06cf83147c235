"""Typed configuration loading.

Configuration comes from four layers, lowest precedence first: built-in
defaults, an optional `pinrel.toml`, `PINREL_*` environment variables and
CLI flags. This module handles the first three; the CLI applies flags with
`dataclasses.replace`.

Credentials are only read from the environment, never from the TOML file.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_list,
    get_number,
    get_str,
    get_table,
)

__all__ = [
    "Config",
    "ConfigError",
    "MirrorSettings",
    "PlanEntry",
    "PlanSettings",
    "RegistrySettings",
    "VisibilitySettings",
    "apply_env",
    "default_suffix",
    "load_config",
    "load_config_or_default",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_DIST_TAG",
    "DEFAULT_PUBLIC_REGISTRY",
    "DEFAULT_SELF_HOSTED_URL",
]

DEFAULT_CONFIG_NAME = "pinrel.toml"
DEFAULT_DIST_TAG = "opensourcebuild"
DEFAULT_PUBLIC_REGISTRY = "https://registry.npmjs.org/"
DEFAULT_SELF_HOSTED_URL = "http://127.0.0.1:4873/"

LIBRARY_VISIBILITY_TIMEOUT = 90.0
FINAL_VISIBILITY_TIMEOUT = 120.0
VISIBILITY_POLL_INTERVAL = 2.0

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class RegistrySettings:
    """Raw registry inputs; the registry router validates them per mode."""

    mode: str = "self-hosted"
    url: str | None = DEFAULT_SELF_HOSTED_URL
    install_url: str | None = None
    publish_url: str | None = None
    base_url: str | None = None
    virtual_repo: str | None = None
    local_repo: str | None = None
    token: str | None = None
    scope: str | None = None


@dataclass(frozen=True, slots=True)
class VisibilitySettings:
    library_timeout: float = LIBRARY_VISIBILITY_TIMEOUT
    final_timeout: float = FINAL_VISIBILITY_TIMEOUT
    interval: float = VISIBILITY_POLL_INTERVAL


@dataclass(frozen=True, slots=True)
class MirrorSettings:
    public_registry: str = DEFAULT_PUBLIC_REGISTRY
    # None means "use the built-in auxiliary package list".
    specs: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class PlanEntry:
    name: str
    directory: str
    bundle_script: str | None = None


@dataclass(frozen=True, slots=True)
class PlanSettings:
    libraries: tuple[PlanEntry, ...]
    runtime: PlanEntry
    consumer: PlanEntry


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    source_root: Path = Path(".")
    state_dir: Path | None = None
    suffix: str | None = None
    dist_tag: str = DEFAULT_DIST_TAG
    dry_run: bool = False
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    visibility: VisibilitySettings = field(default_factory=VisibilitySettings)
    mirror: MirrorSettings = field(default_factory=MirrorSettings)
    # None means "use the built-in release plan".
    plan: PlanSettings | None = None

    @property
    def resolved_state_dir(self) -> Path:
        return self.state_dir or (self.source_root / ".pinrel")

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, base_dir: Path = Path(".")) -> Config:
        """Create Config from parsed TOML.

        Relative paths are resolved against `base_dir` (the config file's
        directory).

        Raises:
            ValueError: On structurally invalid tables (caught by load_config).
        """
        run: StrDict = get_table(data, "run") or {}
        registry: StrDict = get_table(data, "registry") or {}
        visibility: StrDict = get_table(data, "visibility") or {}
        mirror: StrDict = get_table(data, "mirror") or {}

        source = get_str(run, "source_root")
        state = get_str(run, "state_dir")

        return cls(
            source_root=base_dir / source if source else base_dir,
            state_dir=base_dir / state if state else None,
            suffix=get_str(run, "suffix"),
            dist_tag=get_str(run, "dist_tag") or DEFAULT_DIST_TAG,
            dry_run=get_bool(run, "dry_run") or False,
            registry=RegistrySettings(
                mode=get_str(registry, "mode") or "self-hosted",
                url=get_str(registry, "url") or DEFAULT_SELF_HOSTED_URL,
                install_url=get_str(registry, "install_url"),
                publish_url=get_str(registry, "publish_url"),
                base_url=get_str(registry, "base_url"),
                virtual_repo=get_str(registry, "virtual_repo"),
                local_repo=get_str(registry, "local_repo"),
                scope=get_str(registry, "scope"),
            ),
            visibility=VisibilitySettings(
                library_timeout=_seconds(
                    visibility, "library_timeout", LIBRARY_VISIBILITY_TIMEOUT
                ),
                final_timeout=_seconds(visibility, "final_timeout", FINAL_VISIBILITY_TIMEOUT),
                interval=_seconds(
                    visibility, "interval", VISIBILITY_POLL_INTERVAL, allow_zero=False
                ),
            ),
            mirror=MirrorSettings(
                public_registry=get_str(mirror, "public_registry") or DEFAULT_PUBLIC_REGISTRY,
                specs=_parse_specs(mirror),
            ),
            plan=_parse_plan(get_table(data, "plan")),
        )


def _seconds(
    table: StrDict, key: str, default: float, *, allow_zero: bool = True
) -> float:
    value = get_number(table, key)
    if value is None:
        return default
    if value < 0 or (value == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ValueError(f"[visibility].{key} must be {bound}, got {value:g}")
    return value


def _parse_specs(mirror: StrDict) -> tuple[str, ...] | None:
    raw = get_list(mirror, "specs")
    if raw is None:
        return None
    specs: list[str] = []
    for item in raw:
        if not isinstance(item, str) or not item.strip():
            raise ValueError("[mirror].specs must be a list of package specs")
        specs.append(item.strip())
    return tuple(specs)


def _parse_entry(obj: object, *, where: str) -> PlanEntry:
    table = as_str_dict(obj)
    if table is None:
        raise ValueError(f"{where} must be a table with name and directory")
    name = get_str(table, "name")
    directory = get_str(table, "directory")
    if name is None or directory is None:
        raise ValueError(f"{where} requires both name and directory")
    return PlanEntry(name=name, directory=directory, bundle_script=get_str(table, "bundle_script"))


def _parse_plan(plan: StrDict | None) -> PlanSettings | None:
    if plan is None:
        return None

    raw_libraries = get_list(plan, "libraries")
    if raw_libraries is None:
        raise ValueError("[plan] requires a libraries array")
    if "runtime" not in plan or "consumer" not in plan:
        raise ValueError("[plan] requires runtime and consumer tables")

    return PlanSettings(
        libraries=tuple(
            _parse_entry(item, where=f"[plan].libraries[{i}]")
            for i, item in enumerate(raw_libraries)
        ),
        runtime=_parse_entry(plan["runtime"], where="[plan.runtime]"),
        consumer=_parse_entry(plan["consumer"], where="[plan.consumer]"),
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file."""
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value, base_dir=path.parent))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path | None) -> Result[Config, ConfigError]:
    """Load `path` if given, else `./pinrel.toml` if present, else defaults.

    An explicitly given path that does not exist is an error; a missing
    default file is not.
    """
    if path is not None:
        return load_config(path)
    default = Path.cwd() / DEFAULT_CONFIG_NAME
    if default.is_file():
        return load_config(default)
    return Ok(Config())


def _env_bool(value: str) -> bool | None:
    v = value.strip().lower()
    if v in _TRUTHY:
        return True
    if v in _FALSY:
        return False
    return None


def apply_env(config: Config, environ: Mapping[str, str]) -> Result[Config, ConfigError]:
    """Overlay PINREL_* environment variables onto config."""

    def env(name: str) -> str | None:
        value = environ.get(name)
        if value is None:
            return None
        return value.strip() or None

    registry = config.registry
    reg_mode = env("PINREL_REG_MODE")
    registry = replace(
        registry,
        mode=reg_mode or registry.mode,
        url=env("PINREL_REGISTRY_URL") or registry.url,
        install_url=env("PINREL_INSTALL_REGISTRY") or registry.install_url,
        publish_url=env("PINREL_PUBLISH_REGISTRY") or registry.publish_url,
        base_url=env("PINREL_REGISTRY_BASE") or registry.base_url,
        virtual_repo=env("PINREL_VIRTUAL_REPO") or registry.virtual_repo,
        local_repo=env("PINREL_LOCAL_REPO") or registry.local_repo,
        token=env("PINREL_TOKEN") or registry.token,
    )

    dry_run = config.dry_run
    raw_dry = environ.get("PINREL_DRY_RUN")
    if raw_dry is not None:
        parsed = _env_bool(raw_dry)
        if parsed is None:
            return Err(ConfigError(f"PINREL_DRY_RUN must be 0/1/true/false, got {raw_dry!r}"))
        dry_run = parsed

    return Ok(
        replace(
            config,
            registry=registry,
            suffix=env("PINREL_SUFFIX") or config.suffix,
            dist_tag=env("PINREL_DIST_TAG") or config.dist_tag,
            dry_run=dry_run,
        )
    )


def default_suffix(now: datetime | None = None) -> str:
    """Timestamp suffix: `release.YYYYmmddHHMMSS` (UTC)."""
    moment = now or datetime.now(timezone.utc)
    return f"release.{moment.strftime('%Y%m%d%H%M%S')}"
