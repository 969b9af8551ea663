"""Configuration loader and input validation for expoeject.

Values are resolved from several sources, later sources winning:

1. Built-in defaults.
2. An optional YAML file (``--config-file`` or ``EXPOEJECT_CONFIG_FILE``).
3. Step inputs exposed as environment variables (``workdir``,
   ``expo_cli_version``, ``user_name``, ``password``, ``run_publish``,
   ``force_react_native_version``, ``verbose``) and tool settings prefixed
   with ``EXPOEJECT_``.
4. Explicit overrides supplied programmatically (CLI flags).

The result is an immutable :class:`StepConfig`. Cross-field rules (credential
pairing, workdir existence) are checked separately by
:func:`validate_credentials` and :func:`validate_workdir` so the orchestrator
can run them as its first step.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered by packaging
    raise RuntimeError(
        "PyYAML is required to load expoeject configuration. Install with "
        "`pip install expoeject` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "EXPOEJECT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
LATEST_VERSION = "latest"
PUBLISH_ENABLED = "yes"
MASK = "********"

# Step inputs keyed by config field. The misspelt ``expo_cli_verson`` is the
# input name older step definitions still export.
INPUT_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "workdir": ("workdir",),
    "expo_cli_version": ("expo_cli_version", "expo_cli_verson"),
    "user_name": ("user_name",),
    "password": ("password",),
    "run_publish": ("run_publish",),
    "force_react_native_version": ("force_react_native_version",),
    "verbose": ("verbose",),
}

TOOL_ENV_KEYS: dict[str, str] = {
    "npm_bin": f"{ENV_PREFIX}NPM_BIN",
    "expo_bin": f"{ENV_PREFIX}EXPO_BIN",
    "logs_dir": f"{ENV_PREFIX}LOGS_DIR",
}

DEFAULTS: dict[str, object] = {
    "workdir": None,
    "expo_cli_version": None,
    "user_name": "",
    "password": "",
    "run_publish": "no",
    "force_react_native_version": "",
    "verbose": False,
    "npm_bin": "npm",
    "expo_bin": "expo",
    "logs_dir": None,
}

ALLOWED_KEYS = set(DEFAULTS.keys())
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"", "0", "false", "no", "off"}


class ConfigurationError(RuntimeError):
    """Raised when step inputs are missing, malformed, or inconsistent."""


@dataclass(frozen=True)
class StepConfig:
    """Resolved, immutable inputs for a single eject run."""

    expo_cli_version: str
    workdir: Path | None = None
    user_name: str = ""
    password: str = field(default="", repr=False)
    run_publish: str = "no"
    force_react_native_version: str = ""
    verbose: bool = False
    npm_bin: str = "npm"
    expo_bin: str = "expo"
    logs_dir: Path | None = None
    config_file: Path | None = None

    @property
    def publish_enabled(self) -> bool:
        """Return ``True`` when the publish switch is set to ``yes``."""
        return self.run_publish == PUBLISH_ENABLED

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation with the password masked."""
        return {
            "workdir": str(self.workdir) if self.workdir else None,
            "expo_cli_version": self.expo_cli_version,
            "user_name": self.user_name,
            "password": MASK if self.password else "",
            "run_publish": self.run_publish,
            "force_react_native_version": self.force_react_native_version,
            "verbose": self.verbose,
            "npm_bin": self.npm_bin,
            "expo_bin": self.expo_bin,
            "logs_dir": str(self.logs_dir) if self.logs_dir else None,
            "config_file": str(self.config_file) if self.config_file else None,
        }


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> StepConfig:
    """Load and merge configuration sources into a :class:`StepConfig`."""
    merged: dict[str, object] = dict(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_path = _determine_config_path(config_file, resolved_env)
    if config_path is not None:
        merged.update(_load_yaml_file(config_path))

    merged.update(_build_env_overrides(resolved_env))

    if overrides:
        unknown = set(overrides) - ALLOWED_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigurationError(f"Unknown configuration overrides: {joined}.")
        merged.update({key: value for key, value in overrides.items() if value is not None})

    return _build_step_config(merged, config_path)


def validate_credentials(user_name: str | None, password: str | None) -> None:
    """Ensure the account name and password are supplied together or not at all."""
    if user_name and not password:
        raise ConfigurationError("user name is specified but password is not provided")
    if password and not user_name:
        raise ConfigurationError("password is specified but user name is not provided")


def validate_workdir(workdir: str | os.PathLike[str] | None) -> None:
    """Ensure *workdir*, when given, exists and is a directory.

    ``OSError`` other than a missing path (permissions, I/O failures) is
    propagated unchanged because existence could not be determined.
    """
    if workdir is None or not str(workdir):
        return
    path = Path(workdir)
    try:
        path.stat()
    except (FileNotFoundError, NotADirectoryError):
        raise ConfigurationError(f"Workdir does not exist: {path}") from None
    if not path.is_dir():
        raise ConfigurationError(f"Workdir is not a directory: {path}")


def _determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path | None:
    if cli_override:
        return Path(cli_override).expanduser()
    value = env.get(CONFIG_ENV_VAR, "").strip()
    if value:
        return Path(value).expanduser()
    return None


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigurationError(f"Failed to parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level.")
    unknown = {str(key) for key in data} - ALLOWED_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigurationError(f"Unknown configuration keys in {path}: {joined}.")
    return {str(key): value for key, value in data.items()}


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    values: dict[str, object] = {}
    for key, names in INPUT_ENV_KEYS.items():
        for name in names:
            value = env.get(name)
            if value is None:
                continue
            values.setdefault(key, value)
            if value.strip():
                values[key] = value
                break
    for key, name in TOOL_ENV_KEYS.items():
        if env.get(name, "").strip():
            values[key] = env[name].strip()
    return values


def _build_step_config(raw: Mapping[str, object], config_path: Path | None) -> StepConfig:
    version = _expect_str(raw.get("expo_cli_version"), "expo_cli_version").strip()
    if not version:
        raise ConfigurationError("expo_cli_version is required (use 'latest' for the newest).")

    return StepConfig(
        expo_cli_version=version,
        workdir=_optional_path(raw.get("workdir"), "workdir"),
        user_name=_expect_str(raw.get("user_name"), "user_name").strip(),
        password=_expect_str(raw.get("password"), "password"),
        run_publish=_expect_switch(raw.get("run_publish"), "run_publish"),
        force_react_native_version=_expect_str(
            raw.get("force_react_native_version"),
            "force_react_native_version",
        ).strip(),
        verbose=_expect_bool(raw.get("verbose"), "verbose"),
        npm_bin=_expect_non_empty(raw.get("npm_bin"), "npm_bin"),
        expo_bin=_expect_non_empty(raw.get("expo_bin"), "expo_bin"),
        logs_dir=_optional_path(raw.get("logs_dir"), "logs_dir"),
        config_file=config_path,
    )


def _expect_str(value: object, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise ConfigurationError(f"Expected {key} to be a string. Got boolean {value!r}.")
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigurationError(f"Expected {key} to be a string. Got {type(value).__name__}.")


def _expect_non_empty(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigurationError(f"{key} must be a non-empty string.")
    return text


def _expect_switch(value: object, key: str) -> str:
    # YAML 1.1 parses a bare ``yes`` as True.
    if isinstance(value, bool):
        return PUBLISH_ENABLED if value else "no"
    return _expect_str(value, key).strip()


def _expect_bool(value: object, key: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUTHY:
            return True
        if text in _FALSY:
            return False
    raise ConfigurationError(f"Expected {key} to be a boolean (yes/no). Got {value!r}.")


def _optional_path(value: object, key: str) -> Path | None:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser() if value.strip() else None
    raise ConfigurationError(f"Cannot convert {key} value {value!r} to a path.")


__all__ = [
    "CONFIG_ENV_VAR",
    "LATEST_VERSION",
    "MASK",
    "ConfigurationError",
    "StepConfig",
    "load_config",
    "validate_credentials",
    "validate_workdir",
]
