"""YAML configuration with typed defaults."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "ExecutionSettings",
    "GovernorSettings",
    "ModelSettings",
    "PlanningSettings",
    "ProjectSettings",
    "RetrySettings",
    "StewardConfig",
    "copy_config_template",
    "load_config",
    "write_config",
]

DEFAULT_CONFIG_NAME = "steward.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "model": {
        "endpoint": "http://localhost:11434/v1/chat/completions",
        "name": "qwen2.5-coder:7b",
        "temperature": 0.7,
        "timeout": 120,
        "api_key": None,
    },
    "planning": {
        "enabled": True,
    },
    "governor": {
        "dedup_window": 5,
    },
    "retry": {
        "max_retries": 2,
    },
    "execution": {
        "completion_timeout": 30,
        "max_tool_iterations": 10,
    },
    "project": {
        "root": ".",
        "ignore_directories": [],
    },
}


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ModelSettings(_Section):
    endpoint: str = DEFAULT_CONFIG_TEMPLATE["model"]["endpoint"]
    name: str = DEFAULT_CONFIG_TEMPLATE["model"]["name"]
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float = Field(default=120.0, gt=0)
    api_key: Optional[str] = None


class PlanningSettings(_Section):
    enabled: bool = True


class GovernorSettings(_Section):
    dedup_window: float = Field(default=5.0, gt=0)


class RetrySettings(_Section):
    max_retries: int = Field(default=2, ge=0)


class ExecutionSettings(_Section):
    completion_timeout: float = Field(default=30.0, gt=0)
    max_tool_iterations: int = Field(default=10, ge=1)


class ProjectSettings(_Section):
    root: str = "."
    ignore_directories: List[str] = Field(default_factory=list)


class StewardConfig(_Section):
    """Validated runtime configuration."""

    model: ModelSettings = Field(default_factory=ModelSettings)
    planning: PlanningSettings = Field(default_factory=PlanningSettings)
    governor: GovernorSettings = Field(default_factory=GovernorSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    project: ProjectSettings = Field(default_factory=ProjectSettings)

    def project_root(self, config_path: Optional[Path] = None) -> Path:
        """Resolve ``project.root`` relative to the config file location."""
        root = Path(self.project.root)
        if not root.is_absolute() and config_path is not None:
            root = config_path.parent / root
        return root.resolve()


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: Path | str | None) -> StewardConfig:
    """Load YAML configuration, falling back to defaults when the file is absent."""
    data = copy_config_template()
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            try:
                with path.open("r", encoding="utf-8") as handle:
                    loaded = yaml.safe_load(handle) or {}
            except yaml.YAMLError as error:
                raise ConfigError(f"Failed to parse config {path}: {error}") from error
            if not isinstance(loaded, dict):
                raise ConfigError("Configuration must be a mapping at the top level.")
            _merge(data, loaded)

    try:
        return StewardConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}") from error


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)
