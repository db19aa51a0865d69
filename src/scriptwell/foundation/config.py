"""Scriptwell configuration management.

Loads configuration from .scriptwell/config.yaml with sensible defaults.
All settings can be overridden via environment variables (SCRIPTWELL_*).

Config locations (in priority order):
1. Explicit path passed to load_config()
2. .scriptwell/config.yaml (project-local)
3. ~/.scriptwell/config.yaml (user-global)
4. Built-in defaults

Thread Safety:
    Uses threading.Lock for thread-safe lazy initialization.
"""

import logging
import os
import threading
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import yaml

from scriptwell.foundation.errors import ErrorCode, config_error
from scriptwell.foundation.types import (
    AnalysisConfig,
    EngineConfig,
    ModelConfig,
    ScriptwellConfig,
    ToolsConfig,
)

logger = logging.getLogger(__name__)

_ENV_PREFIX = "SCRIPTWELL_"

_SECTIONS: dict[str, type] = {
    "model": ModelConfig,
    "engine": EngineConfig,
    "tools": ToolsConfig,
    "analysis": AnalysisConfig,
}

# Global config instance (lazy-loaded, thread-safe)
_config: ScriptwellConfig | None = None
_config_lock = threading.Lock()


def _defaults() -> dict[str, Any]:
    """Defaults from the dataclass definitions (single source of truth)."""
    result: dict[str, Any] = {name: asdict(cls()) for name, cls in _SECTIONS.items()}
    result["debug"] = False
    return result


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce(value: str) -> Any:
    """Coerce an environment string to bool, int, float or str."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow pattern: SCRIPTWELL_SECTION_KEY, where KEY is
    the field name and may itself contain underscores.

    Examples:
        SCRIPTWELL_ENGINE_MAX_TURNS=10
        SCRIPTWELL_TOOLS_SHELL_TIMEOUT=5.5
        SCRIPTWELL_API_KEYS=key-a,key-b
    """
    env = os.environ if environ is None else environ

    for key, value in env.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        path_str = key[len(_ENV_PREFIX):].lower()

        if path_str == "api_keys":
            config_dict["model"]["api_keys"] = [k.strip() for k in value.split(",") if k.strip()]
            continue
        if path_str == "debug":
            config_dict["debug"] = _coerce(value) is True
            continue

        for section, cls in _SECTIONS.items():
            if not path_str.startswith(section + "_"):
                continue
            field_name = path_str[len(section) + 1:]
            known = {f.name for f in fields(cls)}
            if field_name not in known:
                logger.debug("Ignoring unknown config override %s", key)
                break
            if field_name == "api_keys":
                config_dict[section][field_name] = [k.strip() for k in value.split(",") if k.strip()]
            else:
                config_dict[section][field_name] = _coerce(value)
            break

    # Provider convention: a bare GEMINI_API_KEY is used when no pool is configured
    if not config_dict["model"].get("api_keys") and env.get("GEMINI_API_KEY"):
        config_dict["model"]["api_keys"] = [env["GEMINI_API_KEY"]]

    return config_dict


def _build_section(name: str, data: Any) -> Any:
    cls = _SECTIONS[name]
    if not isinstance(data, dict):
        raise config_error(ErrorCode.CONFIG_INVALID, name, "expected a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Unknown keys in config section %s: %s", name, ", ".join(sorted(unknown)))
    values = {k: v for k, v in data.items() if k in known}
    if "api_keys" in values:
        values["api_keys"] = tuple(values["api_keys"] or ())
    try:
        return cls(**values)
    except TypeError as e:
        raise config_error(ErrorCode.CONFIG_INVALID, name, str(e)) from e


def _dict_to_config(data: dict) -> ScriptwellConfig:
    """Convert a dict to ScriptwellConfig."""
    return ScriptwellConfig(
        model=_build_section("model", data.get("model", {})),
        engine=_build_section("engine", data.get("engine", {})),
        tools=_build_section("tools", data.get("tools", {})),
        analysis=_build_section("analysis", data.get("analysis", {})),
        debug=bool(data.get("debug", False)),
    )


def load_config(path: str | Path | None = None) -> ScriptwellConfig:
    """Load configuration from file with defaults and env overrides.

    Priority (highest to lowest):
    1. Environment variables (SCRIPTWELL_*)
    2. Explicit path if provided
    3. .scriptwell/config.yaml (project-local)
    4. ~/.scriptwell/config.yaml (user-global)
    5. Built-in defaults

    Args:
        path: Optional explicit config file path.

    Returns:
        Merged ScriptwellConfig instance.

    Raises:
        ScriptwellError: CONFIG_INVALID when a section has the wrong shape.
    """
    global _config

    config_dict = _defaults()

    config_paths = []
    if path:
        config_paths.append(Path(path))
    config_paths.extend([
        Path(".scriptwell/config.yaml"),
        Path.home() / ".scriptwell" / "config.yaml",
    ])

    for config_path in config_paths:
        if not config_path.exists():
            continue
        try:
            with open(config_path, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Skipping unreadable config %s: %s", config_path, e)
            continue
        if not isinstance(file_config, dict):
            logger.warning("Skipping config %s: top level is not a mapping", config_path)
            continue
        _deep_update(config_dict, file_config)
        logger.debug("Loaded config from %s", config_path)
        break  # Use first found config

    config_dict = _apply_env_overrides(config_dict)

    _config = _dict_to_config(config_dict)
    return _config


def get_config() -> ScriptwellConfig:
    """Get the current configuration, loading if needed.

    Thread-safe with double-check locking.
    """
    global _config

    if _config is not None:
        return _config

    with _config_lock:
        if _config is None:
            _config = load_config()
        return _config


def reset_config() -> None:
    """Reset the global config (useful for testing)."""
    global _config
    with _config_lock:
        _config = None
