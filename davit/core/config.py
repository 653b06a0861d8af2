"""Configuration management"""
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigError
from .logger import Logger

CONFIG_ENV_VAR = "DAVIT_CONFIG"
CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / "davit"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_CRASH_REASONS = (
    "CrashLoopBackOff",
    "ImagePullBackOff",
    "ErrImagePull",
    "CreateContainerConfigError",
    "CreateContainerError",
    "InvalidImageName",
    "RunContainerError",
    "OOMKilled",
    "Error",
)


@dataclass(frozen=True)
class Defaults:
    interactive: bool = True
    registry: Optional[str] = None
    unified_diff: bool = True


@dataclass(frozen=True)
class Environment:
    """A named deployment target with its own YAML root and cluster context"""
    name: str
    yaml_root_dir: Path
    cluster_context: str
    protected: bool = False
    namespace: str = "default"


@dataclass(frozen=True)
class RolloutPolicy:
    """Which pod phases count as ready or crashed, and how long to wait"""
    timeout_seconds: float = 300.0
    ready_phases: frozenset = frozenset({"Running"})
    failed_phases: frozenset = frozenset({"Failed"})
    gone_phases: frozenset = frozenset({"Succeeded", "Failed"})
    crash_reasons: frozenset = frozenset(DEFAULT_CRASH_REASONS)
    log_buffer_lines: int = 200
    log_tail_lines: int = 10
    log_history_lines: int = 100


@dataclass(frozen=True)
class DavitConfig:
    environments: tuple[Environment, ...]
    defaults: Defaults = field(default_factory=Defaults)
    rollout: RolloutPolicy = field(default_factory=RolloutPolicy)
    path: Optional[Path] = None

    def get_environment(self, name: str) -> Optional[Environment]:
        for env in self.environments:
            if env.name == name:
                return env
        return None


def get_config_path() -> Path:
    """Resolve the configuration file location"""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def load_config(path: Optional[Path] = None) -> DavitConfig:
    """Load and validate the TOML configuration file"""
    path = path or get_config_path()

    if not path.exists():
        raise ConfigError(
            f"Config file not found at {path}. "
            f"Create it or point {CONFIG_ENV_VAR} at one.")

    Logger.verbose_log(f"Loading config from {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML config at {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {path}: {e}") from e

    return parse_config(raw, base_dir=path.parent, path=path)


def parse_config(raw: dict, base_dir: Path = Path("."), path: Optional[Path] = None) -> DavitConfig:
    """Build a DavitConfig from an already-decoded TOML document"""
    defaults = _parse_defaults(_table(raw, "defaults"))
    rollout = _parse_rollout(_table(raw, "rollout"))

    env_tables = raw.get("environments")
    if not isinstance(env_tables, list) or not env_tables:
        raise ConfigError("At least one [[environments]] entry is required")

    environments = []
    seen = set()
    for index, table in enumerate(env_tables):
        if not isinstance(table, dict):
            raise ConfigError(f"environments[{index}] must be a table")
        env = _parse_environment(table, index, base_dir)
        if env.name in seen:
            raise ConfigError(f"Duplicate environment name '{env.name}'")
        seen.add(env.name)
        environments.append(env)

    return DavitConfig(
        environments=tuple(environments),
        defaults=defaults,
        rollout=rollout,
        path=path,
    )


def _table(raw: dict, key: str) -> dict:
    value = raw.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _typed(table: dict, key: str, kind, where: str, default: Any = None, required: bool = False):
    if key not in table:
        if required:
            raise ConfigError(f"{where}: missing required key '{key}'")
        return default
    value = table[key]
    # bool is a subclass of int; keep them apart
    if kind in (int, float) and isinstance(value, bool):
        raise ConfigError(f"{where}.{key} must be a number")
    if kind is float and isinstance(value, int):
        value = float(value)
    if not isinstance(value, kind):
        raise ConfigError(f"{where}.{key} must be of type {kind.__name__}")
    return value


def _string_set(table: dict, key: str, where: str, default: frozenset) -> frozenset:
    value = _typed(table, key, list, where, default=None)
    if value is None:
        return default
    if not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{where}.{key} must be a list of strings")
    return frozenset(value)


def _parse_defaults(table: dict) -> Defaults:
    return Defaults(
        interactive=_typed(table, "interactive", bool, "defaults", default=True),
        registry=_typed(table, "registry", str, "defaults"),
        unified_diff=_typed(table, "unified_diff", bool, "defaults", default=True),
    )


def _parse_rollout(table: dict) -> RolloutPolicy:
    base = RolloutPolicy()
    timeout = _typed(table, "timeout_seconds", float, "rollout", default=base.timeout_seconds)
    if timeout <= 0:
        raise ConfigError("rollout.timeout_seconds must be positive")

    limits = {}
    for key in ("log_buffer_lines", "log_tail_lines", "log_history_lines"):
        value = _typed(table, key, int, "rollout", default=getattr(base, key))
        if value < 1:
            raise ConfigError(f"rollout.{key} must be at least 1")
        limits[key] = value

    return RolloutPolicy(
        timeout_seconds=timeout,
        ready_phases=_string_set(table, "ready_phases", "rollout", base.ready_phases),
        failed_phases=_string_set(table, "failed_phases", "rollout", base.failed_phases),
        gone_phases=_string_set(table, "gone_phases", "rollout", base.gone_phases),
        crash_reasons=_string_set(table, "crash_reasons", "rollout", base.crash_reasons),
        **limits,
    )


def _parse_environment(table: dict, index: int, base_dir: Path) -> Environment:
    where = f"environments[{index}]"
    name = _typed(table, "name", str, where, required=True)

    # Older configs used repo_root / kubectl_context
    root_key = "repo_root" if "repo_root" in table and "yaml_root_dir" not in table else "yaml_root_dir"
    context_key = ("kubectl_context" if "kubectl_context" in table and "cluster_context" not in table
                   else "cluster_context")
    root = _typed(table, root_key, str, f"{where} ({name})", required=True)
    context = _typed(table, context_key, str, f"{where} ({name})", required=True)

    yaml_root = Path(root).expanduser()
    if not yaml_root.is_absolute():
        yaml_root = (base_dir / yaml_root).resolve()

    return Environment(
        name=name,
        yaml_root_dir=yaml_root,
        cluster_context=context,
        protected=_typed(table, "protected", bool, where, default=False),
        namespace=_typed(table, "namespace", str, where, default="default"),
    )
