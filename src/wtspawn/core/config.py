"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (WT_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from wtspawn.core.result import ConfigurationError

CONFIG_ENV_VAR = "WT_CONFIG"


def _default_state_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "wt"


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class SpawnConfig(BaseModel):
    """How worker agents are launched inside their windows."""

    agent_command: str = Field(default="claude", description="Agent executable started per task.")
    agent_process_names: list[str] = Field(
        default_factory=lambda: ["claude", "node"],
        description="Foreground process names that count as a running worker.",
    )
    auto: bool = Field(default=False, description="Launch workers in unattended mode by default.")
    auto_flag: str = Field(
        default="--dangerously-skip-permissions",
        description="Flag appended to the agent command in unattended mode.",
    )


class WorkspaceConfig(BaseModel):
    """Where and from what task checkouts are created."""

    worktrees_dirname: str = Field(
        default=".worktrees", description="Directory under the repo root holding task checkouts."
    )
    base_branch: str | None = Field(
        default=None,
        description="Branch new spawn checkouts start from (default: the repo's current branch).",
    )


class AgentsConfig(BaseModel):
    """Guidance documents prepended to every worker's first prompt."""

    dir: Path = Field(
        default=Path("agents"),
        description="Directory with INDEX.md and other *.md guides; relative to the repo root.",
    )


class StoreConfig(BaseModel):
    """Location of persisted task documents."""

    state_dir: Path = Field(
        default_factory=_default_state_dir,
        description="Directory holding spawned/ and epics/ task documents.",
    )


class DependencyConfig(BaseModel):
    """Dependency resolution policy."""

    dangling: Literal["satisfied", "blocking"] = Field(
        default="satisfied",
        description="How a blocked-by entry naming a missing task is treated.",
    )


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


def _ensure_directory(path: Path, name: str) -> Path:
    """Ensure directory exists, creating if necessary. Raises on failure."""
    expanded = path.expanduser().resolve()
    try:
        expanded.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValueError(f"Cannot create {name} directory {expanded}: {exc}") from exc
    return expanded


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="WT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    spawn: SpawnConfig = Field(default_factory=SpawnConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    dependencies: DependencyConfig = Field(default_factory=DependencyConfig)
    log_level: str = Field(default="INFO", description="Log level for wt output.")

    @field_validator("store", mode="after")
    @classmethod
    def ensure_store_directories(cls, v: StoreConfig) -> StoreConfig:
        """Ensure the state directory exists."""
        v.state_dir = _ensure_directory(v.state_dir, "state")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (_default_state_dir() / "config.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like WT_SPAWN__AUTO, WT_STORE__STATE_DIR.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "spawn": SpawnConfig,
        "workspace": WorkspaceConfig,
        "agents": AgentsConfig,
        "store": StoreConfig,
        "dependencies": DependencyConfig,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    if f"{prefix}LOG_LEVEL" in env_vars:
        overrides.add("log_level")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result
