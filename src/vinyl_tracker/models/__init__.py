"""Configuration models."""

from .config import (
    AudioConfig,
    Config,
    DetectionConfig,
    RecognitionConfig,
    SessionConfig,
    StoreConfig,
    apply_env_overrides,
    config_summary,
    create_default_config,
    load_config,
    save_config,
)

__all__ = [
    "AudioConfig",
    "Config",
    "DetectionConfig",
    "RecognitionConfig",
    "SessionConfig",
    "StoreConfig",
    "apply_env_overrides",
    "config_summary",
    "create_default_config",
    "load_config",
    "save_config",
]
