"""
Centralized Configuration for the Assessment Engine

This module provides a unified configuration system for the engine.
It handles configuration from environment variables, config files, and defaults,
with proper type checking and validation.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseSettings, Field, validator
import yaml

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseSettings):
    """Database configuration"""
    backend: str = Field(default="sql", env="STORAGE_BACKEND")
    url: str = Field(default="sqlite+aiosqlite:///./examcore.db", env="DATABASE_URL")
    echo: bool = Field(default=False, env="SQL_ECHO")
    pool_size: int = Field(default=5, env="DB_POOL_SIZE")
    max_overflow: int = Field(default=10, env="DB_MAX_OVERFLOW")
    pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    read_retries: int = Field(default=1, env="DB_READ_RETRIES")
    read_retry_delay: float = Field(default=0.2, env="DB_READ_RETRY_DELAY")

    @validator('backend')
    def validate_backend(cls, v):
        """Validate storage backend"""
        valid_backends = ['memory', 'sql']
        if v.lower() not in valid_backends:
            raise ValueError(f"Invalid storage backend: {v}. Must be one of {valid_backends}")
        return v.lower()

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured backend is SQLite"""
        return self.url.startswith("sqlite")


class LoggingConfig(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO", env="LOG_LEVEL")
    use_json: bool = Field(default=False, env="LOG_JSON")
    file_path: Optional[str] = Field(default=None, env="LOG_FILE")

    @validator('level')
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class ScoringConfig(BaseSettings):
    """
    Grading policy.

    ``free_form_credit_ratio`` is the share of a free-form question's points
    awarded to any non-empty answer. It is a deployment decision; set it to
    0 to leave free-form answers worth nothing until graded by hand.
    """
    free_form_credit_ratio: float = Field(default=0.5, env="SCORING_FREE_FORM_CREDIT_RATIO")
    code_runner_timeout_seconds: float = Field(default=10.0, env="SCORING_CODE_RUNNER_TIMEOUT")

    @validator('free_form_credit_ratio')
    def validate_ratio(cls, v):
        """Validate ratio is between 0 and 1"""
        if not 0 <= v <= 1:
            raise ValueError(f"Free-form credit ratio must be between 0 and 1, got {v}")
        return v

    @validator('code_runner_timeout_seconds')
    def validate_timeout(cls, v):
        """Validate timeout is positive"""
        if v <= 0:
            raise ValueError(f"Code runner timeout must be positive, got {v}")
        return v


class SessionConfig(BaseSettings):
    """Session and definition rules"""
    duplication_max_retries: int = Field(default=5, env="DUPLICATION_MAX_RETRIES")
    question_min_time_seconds: int = Field(default=30, env="QUESTION_MIN_TIME")
    question_max_time_seconds: int = Field(default=600, env="QUESTION_MAX_TIME")
    title_min_length: int = Field(default=5, env="TITLE_MIN_LENGTH")
    title_max_length: int = Field(default=100, env="TITLE_MAX_LENGTH")

    @validator('duplication_max_retries')
    def validate_retries(cls, v):
        """At least one insert attempt is required"""
        if v < 1:
            raise ValueError(f"Duplication retries must be at least 1, got {v}")
        return v

    @validator('question_max_time_seconds')
    def validate_time_window(cls, v, values):
        """Max question time must not be below the minimum"""
        minimum = values.get('question_min_time_seconds')
        if minimum is not None and v < minimum:
            raise ValueError(f"Question max time {v} is below min time {minimum}")
        return v


class APIConfig(BaseSettings):
    """API configuration"""
    host: str = Field(default="0.0.0.0", env="API_HOST")
    port: int = Field(default=8000, env="API_PORT")
    prefix: str = Field(default="/api", env="API_PREFIX")
    debug: bool = Field(default=False, env="API_DEBUG")


class EnvironmentConfig(BaseSettings):
    """Environment configuration"""
    env: str = Field(default="development", env="ENV")
    testing: bool = Field(default=False, env="TESTING")

    @validator('env')
    def validate_env(cls, v):
        """Validate environment"""
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseSettings):
    """Main application configuration"""
    app_name: str = Field(default="ExamCore", env="APP_NAME")
    version: str = Field(default="0.1.0", env="APP_VERSION")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    class Config:
        env_file = ".env"


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads configuration from:
    1. Default values
    2. Config file
    3. Environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the config loader.

        Args:
            config_path: Path to config file (YAML or JSON)
        """
        self.config_path = config_path or os.environ.get("CONFIG_PATH")
        self._config = None

    def load(self) -> AppConfig:
        """
        Load configuration from all sources.

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        file_config = {}
        if self.config_path:
            file_config = self._load_from_file(self.config_path)

        self._config = AppConfig(**file_config)
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            path: Path to config file

        Returns:
            Loaded configuration dictionary
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        try:
            if path.suffix.lower() in ['.yaml', '.yml']:
                with open(path, 'r') as f:
                    return yaml.safe_load(f) or {}
            elif path.suffix.lower() == '.json':
                with open(path, 'r') as f:
                    return json.load(f)
            else:
                logger.warning(f"Unsupported config file format: {path.suffix}")
                return {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading config file: {e}")
            return {}


# Global configuration instance
config_loader = ConfigLoader()
config = config_loader.load()


def get_config() -> AppConfig:
    """
    Get the loaded configuration.

    Returns:
        Loaded configuration
    """
    return config


def reload_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Reload the configuration.

    Args:
        config_path: Path to config file

    Returns:
        Reloaded configuration
    """
    global config_loader, config
    config_loader = ConfigLoader(config_path)
    config = config_loader.load()
    return config
