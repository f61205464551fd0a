"""Configuration loading: YAML file, environment overrides, and defaults."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .models.ollama import DEFAULT_MODEL, DEFAULT_OLLAMA_URL
from .phases import PhaseName

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "lcoder.yaml"
USER_CONFIG_PATH = Path("~/.config/lcoder/config.yaml")

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "models": {
        "default": DEFAULT_MODEL,
        "planner": "",
        "executor": "",
        "reviewer": "",
    },
    "ollama": {
        "url": DEFAULT_OLLAMA_URL,
        "timeout": 600,
        "health_timeout": 3,
    },
    "agent": {
        "auto_approve": False,
        "review": True,
        "max_plan_steps": 100,
        "history_limit": 50,
    },
    "context": {
        "max_files": 80,
        "max_chars": 30000,
        "auto_load_skill": True,
    },
    "paths": {
        "logs": "",
    },
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Explicit settings handed to the orchestrator and session controller."""

    ollama_url: str = DEFAULT_OLLAMA_URL
    default_model: str = DEFAULT_MODEL
    planner_model: str = ""
    executor_model: str = ""
    reviewer_model: str = ""
    request_timeout: float = 600.0
    health_timeout: float = 3.0
    auto_approve: bool = False
    review_enabled: bool = True
    max_plan_steps: int = 100
    history_limit: int = 50
    max_context_files: int = 80
    max_context_chars: int = 30000
    auto_load_skill: bool = True
    logs_dir: Optional[Path] = None

    def model_for(self, persona: PhaseName) -> str:
        """Return the model used by ``persona``, falling back to the default model."""
        override = {
            PhaseName.PLANNER: self.planner_model,
            PhaseName.EXECUTOR: self.executor_model,
            PhaseName.REVIEWER: self.reviewer_model,
        }[persona]
        return override.strip() or self.default_model

    def as_dict(self) -> Dict[str, Any]:
        data = {field_info.name: getattr(self, field_info.name) for field_info in fields(self)}
        if self.logs_dir is not None:
            data["logs_dir"] = self.logs_dir.as_posix()
        return data

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        env: Optional[Mapping[str, str]] = None,
        base_dir: Optional[Path] = None,
    ) -> AgentConfig:
        """Build a config from a parsed YAML mapping, then apply environment overrides."""
        models = _section(data, "models")
        ollama = _section(data, "ollama")
        agent = _section(data, "agent")
        context = _section(data, "context")
        paths = _section(data, "paths")

        logs_value = str(paths.get("logs") or "").strip()
        logs_dir: Optional[Path] = None
        if logs_value:
            logs_dir = Path(logs_value).expanduser()
            if not logs_dir.is_absolute() and base_dir is not None:
                logs_dir = base_dir / logs_dir

        values: Dict[str, Any] = {
            "ollama_url": _as_str(ollama.get("url"), DEFAULT_OLLAMA_URL),
            "default_model": _as_str(models.get("default"), DEFAULT_MODEL),
            "planner_model": _as_str(models.get("planner"), ""),
            "executor_model": _as_str(models.get("executor"), ""),
            "reviewer_model": _as_str(models.get("reviewer"), ""),
            "request_timeout": _as_number(ollama.get("timeout"), 600.0, "ollama.timeout"),
            "health_timeout": _as_number(ollama.get("health_timeout"), 3.0, "ollama.health_timeout"),
            "auto_approve": _as_bool(agent.get("auto_approve"), False, "agent.auto_approve"),
            "review_enabled": _as_bool(agent.get("review"), True, "agent.review"),
            "max_plan_steps": int(_as_number(agent.get("max_plan_steps"), 100, "agent.max_plan_steps")),
            "history_limit": int(_as_number(agent.get("history_limit"), 50, "agent.history_limit")),
            "max_context_files": int(_as_number(context.get("max_files"), 80, "context.max_files")),
            "max_context_chars": int(_as_number(context.get("max_chars"), 30000, "context.max_chars")),
            "auto_load_skill": _as_bool(context.get("auto_load_skill"), True, "context.auto_load_skill"),
            "logs_dir": logs_dir,
        }
        values.update(_environment_overrides(os.environ if env is None else env))
        return cls(**values)


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def load_config_data(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as error:
        raise ConfigError(f"Could not read config file {config_path}: {error}") from error
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {config_path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return data


def discover_config_path(project_root: Path) -> Optional[Path]:
    """Return the project config, else the user config, else ``None``."""
    for candidate in (project_root / DEFAULT_CONFIG_NAME, USER_CONFIG_PATH.expanduser()):
        if candidate.is_file():
            return candidate
    return None


def load_config(
    config_path: Optional[Path] = None,
    *,
    project_root: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> AgentConfig:
    """Resolve the effective configuration.

    Precedence is environment, then file, then defaults. An explicit ``config_path``
    must exist; otherwise the project and user locations are searched.
    """
    root = project_root or Path.cwd()
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        path: Optional[Path] = config_path
    else:
        path = discover_config_path(root)

    data: Dict[str, Any] = {}
    if path is not None:
        LOGGER.debug("Loading configuration from %s", path)
        data = load_config_data(path)
    return AgentConfig.from_mapping(data, env=env, base_dir=root)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    return value


def _as_str(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text if text else default


def _as_number(value: Any, default: float, key: str) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Config value '{key}' must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"Config value '{key}' must be a number.") from error
    if number <= 0:
        raise ConfigError(f"Config value '{key}' must be positive.")
    return number


def _as_bool(value: Any, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Config value '{key}' must be a boolean.")


def _environment_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """Translate ``LCODER_*`` variables (and ``OLLAMA_HOST``) into config fields."""
    overrides: Dict[str, Any] = {}
    url = env.get("LCODER_OLLAMA_URL") or env.get("OLLAMA_HOST")
    if url and url.strip():
        url = url.strip()
        if "://" not in url:
            url = f"http://{url}"
        overrides["ollama_url"] = url
    model = env.get("LCODER_MODEL")
    if model and model.strip():
        overrides["default_model"] = model.strip()
    max_files = env.get("LCODER_MAX_FILES")
    if max_files and max_files.strip():
        try:
            overrides["max_context_files"] = max(int(max_files), 1)
        except ValueError:
            LOGGER.warning("Ignoring non-numeric LCODER_MAX_FILES=%r", max_files)
    for variable, field_name in (
        ("LCODER_AUTO_APPROVE", "auto_approve"),
        ("LCODER_AUTO_SKILL", "auto_load_skill"),
    ):
        raw = env.get(variable)
        if raw is None or not raw.strip():
            continue
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            overrides[field_name] = True
        elif lowered in _FALSE_VALUES:
            overrides[field_name] = False
        else:
            LOGGER.warning("Ignoring unrecognised %s=%r", variable, raw)
    return overrides


__all__ = [
    "AgentConfig",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "copy_config_template",
    "discover_config_path",
    "load_config",
    "load_config_data",
    "write_config",
]
