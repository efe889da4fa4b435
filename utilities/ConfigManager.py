import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Optional

PHOTO_QUALITY_LEVELS = {"speed": 70, "balanced": 85, "quality": 95}
DEFAULT_CONFIG_PATH = "starrycam.json"


def _require_type(name, value, expected):
    # JSON true/false would otherwise pass as int
    if isinstance(value, bool) or not isinstance(value, expected):
        raise ValueError(f"{name} must be of type {expected.__name__}, got {type(value).__name__}")


@dataclass
class AppConfig:
    """Runtime settings shared by the capture, inference and UI layers."""

    model_path: str = "models/starry_night.pt"
    hf_repo_id: Optional[str] = None
    hf_filename: Optional[str] = "starry_night.pt"
    camera_index: int = 0
    photo_quality: str = "balanced"
    image_size: Optional[int] = 512
    output_rotation: int = 90
    inference_workers: int = 1
    device: str = "auto"
    log_level: str = "INFO"

    def __post_init__(self):
        for name in ("camera_index", "output_rotation", "inference_workers"):
            _require_type(name, getattr(self, name), int)
        if self.image_size is not None:
            _require_type("image_size", self.image_size, int)
        for name in ("model_path", "photo_quality", "device", "log_level"):
            _require_type(name, getattr(self, name), str)
        for name in ("hf_repo_id", "hf_filename"):
            if getattr(self, name) is not None:
                _require_type(name, getattr(self, name), str)

        if self.photo_quality not in PHOTO_QUALITY_LEVELS:
            raise ValueError(
                f"photo_quality must be one of {sorted(PHOTO_QUALITY_LEVELS)}, got '{self.photo_quality}'"
            )
        if self.image_size is not None and self.image_size <= 0:
            raise ValueError("image_size must be a positive integer or null")
        if self.output_rotation % 90 != 0:
            raise ValueError("output_rotation must be a multiple of 90 degrees")
        if self.inference_workers < 1:
            raise ValueError("inference_workers must be at least 1")
        if self.device not in ("auto", "cpu", "cuda", "mps"):
            raise ValueError(f"Unsupported device '{self.device}'")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level '{self.log_level}'")

    @property
    def level(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @property
    def hf_token(self) -> Optional[str]:
        return os.environ.get("HF_TOKEN")

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a JSON object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_dict(self):
        return asdict(self)


class ConfigManager:
    @staticmethod
    def load_config(config_path, default_config=None):
        """
        Load configuration from a file. If the file does not exist and default_config is provided,
        create the file with the default configuration.

        :param config_path: Path to the configuration file.
        :param default_config: A dictionary with default configuration values.
        :return: Loaded configuration as a dictionary.
        """
        if not os.path.exists(config_path):
            if default_config is not None:
                ConfigManager.save_config(default_config, config_path)
                return default_config
            raise FileNotFoundError(f"Config file '{config_path}' not found.")

        try:
            with open(config_path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file '{config_path}': {e}")

    @staticmethod
    def save_config(config, config_path):
        """
        Save configuration to a file.

        :param config: Dictionary containing configuration values.
        :param config_path: Path to save the configuration file.
        """
        try:
            with open(config_path, "w") as f:
                json.dump(config, f, indent=4)
        except Exception as e:
            raise IOError(f"Failed to save config to '{config_path}': {e}")

    @staticmethod
    def load_app_config(config_path=None) -> AppConfig:
        """
        Build an AppConfig from a JSON file. Without a path the defaults are used;
        a missing file at the given path is created from the defaults.

        :param config_path: Path to the configuration file (optional).
        :return: Validated AppConfig.
        """
        if config_path is None:
            return AppConfig()
        data = ConfigManager.load_config(config_path, default_config=AppConfig().to_dict())
        return AppConfig.from_dict(data)
