"""Configuration model for vinyl tracker."""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import json
import os
from dataclasses import dataclass, field

from ..exceptions import ConfigurationError


@dataclass
class SessionConfig:
    """Configuration for listening session detection."""
    session_timeout: float = 1800  # seconds of silence before a session closes
    audio_threshold: float = -50.0  # dB; levels above this open a session


@dataclass
class DetectionConfig:
    """Configuration for silence and clipping detection."""
    silence_threshold: float = -50.0
    silence_duration: float = 10.0
    clipping_threshold: float = -1.0


@dataclass
class RecognitionConfig:
    """Configuration for the fingerprint service and recognition workflow."""
    acrcloud_host: Optional[str] = None
    acrcloud_access_key: Optional[str] = None
    acrcloud_access_secret: Optional[str] = None
    api_timeout: float = 15.0
    sample_duration: int = 10
    min_sample_seconds: float = 3.0
    auto_on_session_start: bool = False
    auto_delay: float = 20.0

    @property
    def is_configured(self) -> bool:
        return bool(self.acrcloud_host and self.acrcloud_access_key and self.acrcloud_access_secret)


@dataclass
class AudioConfig:
    """Configuration for the capture buffer and sample encoding."""
    sample_rate: int = 48000
    channels: int = 2
    sample_width: int = 2
    buffer_seconds: int = 30
    target_sample_rate: int = 44100


@dataclass
class StoreConfig:
    """Configuration for the SQLite store."""
    database_path: Path = field(
        default_factory=lambda: Path.home() / ".local" / "share" / "vinyl-tracker" / "vinyl.db"
    )


@dataclass
class Config:
    """Main configuration model."""
    session: SessionConfig = field(default_factory=SessionConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def default(cls) -> "Config":
        """Create a default configuration."""
        return cls()


def _dataclass_to_dict(obj):
    """Convert dataclass to dict recursively."""
    from dataclasses import is_dataclass, asdict
    if is_dataclass(obj):
        result = {}
        for key, value in asdict(obj).items():
            result[key] = _dataclass_to_dict(value)
        return result
    elif isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: _dataclass_to_dict(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_dataclass_to_dict(item) for item in obj]
    else:
        return obj


def _dict_to_dataclass(data, dataclass_type):
    """Convert dict to dataclass recursively. Unknown keys are ignored."""
    from dataclasses import is_dataclass, fields
    if not is_dataclass(dataclass_type):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected an object for {dataclass_type.__name__}, got {type(data).__name__}"
        )

    # Get field types
    field_types = {f.name: f.type for f in fields(dataclass_type)}

    kwargs = {}
    for field_name, field_type in field_types.items():
        if field_name in data:
            if hasattr(field_type, '__dataclass_fields__'):
                # It's a dataclass
                kwargs[field_name] = _dict_to_dataclass(data[field_name], field_type)
            elif field_type is Path:
                kwargs[field_name] = Path(data[field_name]).expanduser()
            else:
                kwargs[field_name] = data[field_name]

    return dataclass_type(**kwargs)


def load_config(config_path: Path) -> Config:
    """Load configuration from JSON file."""
    try:
        with open(config_path, 'r') as f:
            config_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration {config_path}: {e}") from e

    return _dict_to_dataclass(config_data, Config)


def save_config(config: Config, config_path: Path) -> None:
    """Save configuration to JSON file."""
    config_dict = _dataclass_to_dict(config)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        json.dump(config_dict, f, indent=2)


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    save_config(Config.default(), config_path)


def _env_float(environ: Mapping[str, str], name: str) -> Optional[float]:
    raw = environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def apply_env_overrides(config: Config, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Override credentials and session settings from environment variables."""
    if environ is None:
        environ = os.environ

    recognition = config.recognition
    recognition.acrcloud_host = environ.get("ACRCLOUD_HOST") or recognition.acrcloud_host
    recognition.acrcloud_access_key = environ.get("ACRCLOUD_ACCESS_KEY") or recognition.acrcloud_access_key
    recognition.acrcloud_access_secret = (
        environ.get("ACRCLOUD_ACCESS_SECRET") or recognition.acrcloud_access_secret
    )

    timeout = _env_float(environ, "SESSION_TIMEOUT")
    if timeout is not None:
        config.session.session_timeout = timeout

    threshold = _env_float(environ, "AUDIO_THRESHOLD")
    if threshold is not None:
        config.session.audio_threshold = threshold

    return config


def config_summary(config: Config) -> Dict[str, Any]:
    """Configuration as a dictionary with secrets masked."""
    data = _dataclass_to_dict(config)
    for key in ("acrcloud_access_key", "acrcloud_access_secret"):
        if data["recognition"].get(key):
            data["recognition"][key] = "***"
    return data
