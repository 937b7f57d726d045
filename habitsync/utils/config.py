"""
Configuration management with schema validation.
Single source of truth for HabitSync client configuration.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigError
from .logger import get_logger

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

DATA_DIR = Path("data")
SETTINGS_FILE = Path(os.getenv("HABITSYNC_SETTINGS", str(DATA_DIR / "settings.yaml")))


class AppSettings(BaseModel):
    name: str = "HabitSync"
    version: str = "1.0.0"
    environment: str = "production"


class ApiSettings(BaseModel):
    base_url: str = "http://localhost:1337/api"
    timeout_seconds: float = Field(default=10.0, gt=0)


class StorageSettings(BaseModel):
    credential_path: str = "data/credentials.json"
    storage_key: str = "userToken"
    key_env: str = "HABITSYNC_ENC_KEY"
    key_path: str = "data/.credential_key"


class SyncSettings(BaseModel):
    refresh_attempts: int = Field(default=3, ge=1, le=10)
    checkin_timezone: Optional[str] = None  # IANA name; None/empty = device local zone


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: Optional[str] = "logs/habitsync.log"
    max_bytes: int = 10485760
    backup_count: int = 5


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class ConfigManager:
    """Loads settings.yaml with ${VAR:default} environment substitution"""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
        self._settings: Optional[Settings] = None

    def _substitute_env_vars(self, value: Any) -> Any:
        """Recursively substitute environment variables"""
        if isinstance(value, str):
            if value.startswith("${") and value.endswith("}"):
                var_expr = value[2:-1]
                if ":" in var_expr:
                    var_name, default = var_expr.split(":", 1)
                    return os.getenv(var_name.strip(), default.strip())
                else:
                    return os.getenv(var_expr, value)
        elif isinstance(value, dict):
            return {k: self._substitute_env_vars(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._substitute_env_vars(item) for item in value]
        return value

    def load_settings(self) -> Settings:
        """Load and validate settings.yaml"""
        if not self.settings_path.exists():
            raise ConfigError(f"Settings file not found: {self.settings_path}")

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read settings file {self.settings_path}: {e}") from e

        processed_data = self._substitute_env_vars(raw_data)
        try:
            self._settings = Settings(**processed_data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid settings in {self.settings_path}: {e}") from e

        logger.debug("Settings loaded", path=str(self.settings_path))
        return self._settings

    @property
    def settings(self) -> Settings:
        """Loaded settings, loading them on first access"""
        if self._settings is None:
            return self.load_settings()
        return self._settings


config_manager = ConfigManager()
