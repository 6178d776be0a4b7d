"""Configuration management for the DAG engine."""

import os
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from .models.core import ProviderConfig


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EngineConfig(BaseModel):
    """Engine configuration settings."""

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    structured_logging: bool = Field(default=False, description="Emit JSON log lines")

    # Execution log settings
    log_output_max_chars: int = Field(
        default=500,
        description="String outputs longer than this are truncated in execution log entries"
    )

    # Default LLM provider settings
    llm_provider: str = Field(default="ollama", description="LLM provider name")
    llm_base_url: str = Field(default="http://localhost:11434", description="LLM provider base URL")
    llm_api_key: str = Field(default="", description="LLM provider API key")
    llm_model: str = Field(default="llama3", description="Default model name")
    llm_timeout: float = Field(default=60.0, description="LLM request timeout in seconds")

    @field_validator('log_output_max_chars')
    @classmethod
    def validate_log_output_max_chars(cls, v):
        """Validate log truncation length."""
        if v < 1:
            raise ValueError("log_output_max_chars must be at least 1")
        return v

    @field_validator('llm_timeout')
    @classmethod
    def validate_timeout(cls, v):
        """Validate timeout values."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    def provider_config(self) -> ProviderConfig:
        """Build the default provider configuration for ``llm`` nodes."""
        return ProviderConfig(
            provider=self.llm_provider,
            base_url=self.llm_base_url,
            api_key=self.llm_api_key,
            model=self.llm_model,
            timeout=self.llm_timeout,
        )

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"DAGFLOW_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            return type_func(value)

        return cls(
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
            log_output_max_chars=get_env("LOG_OUTPUT_MAX_CHARS", 500, int),
            llm_provider=get_env("LLM_PROVIDER", "ollama"),
            llm_base_url=get_env("LLM_BASE_URL", "http://localhost:11434"),
            llm_api_key=get_env("LLM_API_KEY", ""),
            llm_model=get_env("LLM_MODEL", "llama3"),
            llm_timeout=get_env("LLM_TIMEOUT", 60.0, float),
        )


# Global configuration instance
_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> EngineConfig:
    """Load configuration from a .env file (if present) and environment variables."""
    global _config
    from dotenv import load_dotenv

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = EngineConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_development_config() -> EngineConfig:
    """Get development configuration."""
    return EngineConfig(
        log_level=LogLevel.DEBUG,
        log_output_max_chars=2000,
    )


def get_testing_config() -> EngineConfig:
    """Get testing configuration."""
    return EngineConfig(
        log_level=LogLevel.WARNING,
        llm_timeout=5.0,
    )
