# relnotes/config/loader.py
"""
Loads render settings from TOML files and environment variables.

Precedence, lowest first: user config, project config, environment. The CLI
applies its own flags on top of the result.
"""
import os
from dataclasses import fields as dataclass_fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import structlog
import toml

from relnotes.exceptions import ConfigError

from .settings import LogLevel, RenderSettings

log = structlog.get_logger(__name__)

PROJECT_CONFIG_FILENAMES = [".relnotes.toml", "relnotes.toml", "pyproject.toml"]
USER_CONFIG_DIR = Path.home() / ".config" / "relnotes"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.toml"

ENVIRONMENT_OVERRIDES: Dict[str, str] = {
    "RELNOTES_ALLOW_UNSAFE_CODE": "allow_unsafe_code",
    "RELNOTES_EMPTY_SET_TEXT": "empty_set_text",
    "RELNOTES_LOG_LEVEL": "log_level",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _load_toml_file_data(file_path: Path) -> Dict[str, Any]:
    if not file_path.is_file(): return {}
    log.debug("loading_toml_config_file", path=str(file_path))
    try:
        data = toml.load(file_path)
    except (toml.TomlDecodeError, OSError) as e:
        log.error("config_file_load_error", path=str(file_path), error=str(e))
        return {}
    if file_path.name == "pyproject.toml":
        return data.get("tool", {}).get("relnotes", {})
    return data


def load_and_merge_configs(project_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Merges the user config with the first project config file found in ``project_dir``."""
    merged_toml_data: Dict[str, Any] = {}
    if USER_CONFIG_FILE.is_file():
        log.info("loading_user_global_config", path=str(USER_CONFIG_FILE))
        merged_toml_data.update(_load_toml_file_data(USER_CONFIG_FILE))

    search_dir = project_dir or Path.cwd()
    for filename in PROJECT_CONFIG_FILENAMES:
        candidate = search_dir / filename
        if candidate.is_file():
            project_settings = _load_toml_file_data(candidate)
            if project_settings:
                log.info("loading_project_local_config", path=str(candidate))
                merged_toml_data.update(project_settings)
                break
    if not merged_toml_data: log.debug("no_configuration_files_loaded")
    return merged_toml_data


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        return value.strip().lower() in _TRUE_STRINGS
    raise ConfigError(f"setting '{key}' must be a boolean, got {value!r}")


def _coerce_setting(key: str, value: Any) -> Any:
    if key in ("allow_unsafe_code", "json_logs"):
        return _coerce_bool(key, value)
    if key == "log_level":
        level = LogLevel.from_string(value) if isinstance(value, str) else None
        if level is None:
            raise ConfigError(f"setting 'log_level' must be one of {[level.value for level in LogLevel]}, got {value!r}")
        return level.value
    if key == "empty_set_text":
        if not isinstance(value, str):
            raise ConfigError(f"setting 'empty_set_text' must be a string, got {value!r}")
        return value
    return value


def apply_settings(settings: RenderSettings, values: Mapping[str, Any], source: str) -> RenderSettings:
    """Returns a copy of ``settings`` with known keys from ``values`` applied."""
    known = {f.name for f in dataclass_fields(RenderSettings)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            log.warning("unknown_config_key_ignored", key=key, source=source)
            continue
        updates[key] = _coerce_setting(key, value)
    return replace(settings, **updates)


def load_settings(
    project_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RenderSettings:
    """Builds RenderSettings from config files, then environment overrides."""
    environ = os.environ if environ is None else environ
    settings = apply_settings(RenderSettings(), load_and_merge_configs(project_dir), source="config_files")

    env_values = {attr: environ[var] for var, attr in ENVIRONMENT_OVERRIDES.items() if var in environ}
    if env_values:
        log.debug("applying_environment_overrides", keys=sorted(env_values))
        settings = apply_settings(settings, env_values, source="environment")
    if settings.allow_unsafe_code:
        log.warning("unsafe_template_code_enabled")
    return settings
