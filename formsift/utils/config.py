"""
Configuration management for formsift.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "formsift"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    log_to_file: bool = False


class TrainingConfig(BaseModel):
    """Linear model training configuration (form type and page type)."""

    model_config = ConfigDict(extra="forbid")

    form_c: float = 5.0
    form_max_iter: int = 100
    page_c: float = 5.0
    page_max_iter: int = 100
    lbfgs_history: int = 10  # number of stored (s, y) correction pairs
    tolerance: float = 1e-5  # stop when max |gradient| falls below this


class CRFConfig(BaseModel):
    """Field type CRF training configuration."""

    model_config = ConfigDict(extra="forbid")

    c2: float = 0.1  # L2 regularization strength
    max_iter: int = 100


class TfidfConfig(BaseModel):
    """TF-IDF weighting configuration."""

    # idf = log((1 + n) / (1 + df)) + 1 when True, log(n / df) + 1 otherwise
    smooth_idf: bool = True


class EvaluationConfig(BaseModel):
    """Cross-validation configuration."""

    folds: int = 10
    workers: int = 1  # >1 runs folds on a thread pool


class InferenceConfig(BaseModel):
    """Inference defaults used by the CLI."""

    threshold: float = 0.05
    model_path: str = "model.json"


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    crf: CRFConfig = Field(default_factory=CRFConfig)
    tfidf: TfidfConfig = Field(default_factory=TfidfConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides (settings section).

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / "settings.yaml"
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_path = config_dir / "local.yaml"
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            local_overrides = yaml.safe_load(f) or {}
        if "settings" in local_overrides:
            config = _deep_merge(config, local_overrides["settings"])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with FORMSIFT_ and use
    double underscores for nested keys.

    Example:
        FORMSIFT_CRF__C2=0.5

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "FORMSIFT_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "FORMSIFT_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value or "e-" in value.lower():
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("FORMSIFT_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at formsift/utils/config.py
    return Path(__file__).parent.parent.parent
