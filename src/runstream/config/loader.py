#
# config/loader.py
#
"""
Loads runstream TOML configuration into the attrs models.
"""

import tomllib
from pathlib import Path
from typing import Any

import structlog

from runstream.config.models import DriverOptions, GlobalConfig, PackageSpec, RunstreamConfig
from runstream.exceptions import ConfigurationError

log = structlog.get_logger("config.loader")

_DRIVER_KEYS = {
    "jobs": "jobs",
    "timeout": "timeout",
    "run": "run_pattern",
    "bench": "bench_pattern",
    "benchtime": "bench_time",
    "cover_mode": "cover_mode",
    "coverprofile_dir": "cover_profile_dir",
    "verbose": "verbose",
}


def _build_package(name: str, raw: Any, base_dir: Path) -> PackageSpec:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Package '{name}' must be a table")
    if "command" not in raw:
        raise ConfigurationError(f"Package '{name}' is missing 'command'")
    unknown = set(raw) - {"command", "cwd", "env"}
    if unknown:
        raise ConfigurationError(f"Package '{name}' has unknown keys: {sorted(unknown)}")

    cwd = raw.get("cwd")
    env = raw.get("env", {})
    if not isinstance(env, dict) or not all(isinstance(v, str) for v in env.values()):
        raise ConfigurationError(f"Package '{name}' env must be a table of strings")
    return PackageSpec(
        name=name,
        command=raw["command"],
        cwd=(base_dir / cwd).resolve() if cwd is not None else base_dir,
        env=env,
    )


def _build_driver(raw: Any, base_dir: Path) -> DriverOptions:
    if not isinstance(raw, dict):
        raise ConfigurationError("[driver] must be a table")
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "log_level":
            continue
        attr = _DRIVER_KEYS.get(key)
        if attr is None:
            raise ConfigurationError(f"Unknown [driver] key '{key}'")
        kwargs[attr] = (base_dir / value).resolve() if attr == "cover_profile_dir" else value
    return DriverOptions(**kwargs)


def load_config(config_path: Path) -> RunstreamConfig:
    """
    Reads and validates a runstream TOML file.

    Raises:
        ConfigurationError: when the file cannot be read, is not valid TOML,
            or does not describe a valid configuration.
    """
    load_log = log.bind(path=str(config_path))
    load_log.debug("Loading configuration")
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file '{config_path}': {e}", details=e) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in '{config_path}': {e}", details=e) from e

    base_dir = config_path.resolve().parent
    try:
        driver_raw = data.get("driver", {})
        driver = _build_driver(driver_raw, base_dir)
        global_config = GlobalConfig(log_level=driver_raw.get("log_level", "WARNING"))
        packages_raw = data.get("packages", {})
        if not isinstance(packages_raw, dict):
            raise ConfigurationError("[packages] must be a table")
        packages = {name: _build_package(name, raw, base_dir) for name, raw in packages_raw.items()}
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration in '{config_path}': {e}", details=e) from e

    load_log.info("Configuration loaded", packages=len(packages))
    return RunstreamConfig(packages=packages, driver=driver, global_config=global_config)


# 🔼⚙️
