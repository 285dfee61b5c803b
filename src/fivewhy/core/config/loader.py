"""Settings for a fivewhy process.

Values come from an optional YAML file and are then overridden by
``FIVEWHY_*`` environment variables, so a deployment can run on env alone.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from fivewhy.core.errors import ConfigError
from fivewhy.core.models.schemas import ReasoningMode


class LLMSettings(BaseModel):
    provider: str = "local"
    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    backend_name: str = "primary"
    timeout_s: float = 60.0
    models: dict[ReasoningMode, str] = Field(default_factory=dict)
    remember_responses: bool = False


class MemorySettings(BaseModel):
    redis_url: str | None = None
    vector_store_path: str | None = None
    embedding_dimension: int = 384
    embedding_model: str | None = None


class FeatureSettings(BaseModel):
    five_why: bool = True
    root_cause: bool = True
    reframer: bool = True


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    state_dir: str = str(Path.home() / ".fivewhy")
    llm: LLMSettings = Field(default_factory=LLMSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    features: FeatureSettings = Field(default_factory=FeatureSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()


_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "FIVEWHY_STATE_DIR": ("state_dir",),
    "FIVEWHY_LLM_PROVIDER": ("llm", "provider"),
    "FIVEWHY_LLM_API_KEY": ("llm", "api_key"),
    "FIVEWHY_LLM_BASE_URL": ("llm", "base_url"),
    "FIVEWHY_LLM_MODEL": ("llm", "model"),
    "FIVEWHY_LLM_TIMEOUT_S": ("llm", "timeout_s"),
    "FIVEWHY_LLM_REMEMBER_RESPONSES": ("llm", "remember_responses"),
    "FIVEWHY_REDIS_URL": ("memory", "redis_url"),
    "FIVEWHY_VECTOR_STORE_PATH": ("memory", "vector_store_path"),
    "FIVEWHY_EMBEDDING_DIM": ("memory", "embedding_dimension"),
    "FIVEWHY_EMBEDDING_MODEL": ("memory", "embedding_model"),
    "FIVEWHY_FEATURE_FIVE_WHY": ("features", "five_why"),
    "FIVEWHY_FEATURE_ROOT_CAUSE": ("features", "root_cause"),
    "FIVEWHY_FEATURE_REFRAMER": ("features", "reframer"),
    "FIVEWHY_LOG_LEVEL": ("logging", "level"),
}

_TOGGLES = frozenset(
    {
        "FIVEWHY_LLM_REMEMBER_RESPONSES",
        "FIVEWHY_FEATURE_FIVE_WHY",
        "FIVEWHY_FEATURE_ROOT_CAUSE",
        "FIVEWHY_FEATURE_REFRAMER",
    }
)


def _apply_env(data: dict[str, Any]) -> dict[str, Any]:
    for env_name, path in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        target = data
        for key in path[:-1]:
            target = target.setdefault(key, {})
        if env_name in _TOGGLES:
            target[path[-1]] = raw.strip().casefold() in {"1", "true", "yes", "on"}
        else:
            target[path[-1]] = raw
    return data


def load_settings(path: str | None = None) -> Settings:
    data: dict[str, Any] = {}
    if path:
        cfg_path = Path(path)
        try:
            with cfg_path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read config {cfg_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"config {cfg_path} must be a mapping")
        data = loaded
    try:
        return Settings.model_validate(_apply_env(data))
    except ValueError as exc:
        raise ConfigError(f"invalid settings: {exc}") from exc
