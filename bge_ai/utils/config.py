"""
Configuration Management
========================

Centralized configuration for the BGE AI gateway.
Values come from environment variables (optionally a .env file) and can be
overridden by a YAML configuration file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from bge_ai.utils.errors import InvalidConfigError

# Load environment variables from the .env file in the project root only,
# never from the current working directory
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"

load_dotenv(dotenv_path=_env_file)

CONFIG_FILE_NAME = ".bge-ai.yaml"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise InvalidConfigError(name, value, "must be a number")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidConfigError(name, value, "must be an integer")


@dataclass
class OpenAIConfig:
    """Primary provider (OpenAI chat completions)."""
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    api_base: str = field(default_factory=lambda: os.getenv(
        "OPENAI_API_BASE",
        "https://api.openai.com/v1"
    ))
    model: str = field(default_factory=lambda: os.getenv(
        "OPENAI_MODEL",
        "gpt-4-turbo-preview"
    ))
    # Cheap model used by connectivity probes
    probe_model: str = "gpt-3.5-turbo"


@dataclass
class AnthropicConfig:
    """Secondary provider (Anthropic messages API)."""
    api_key: Optional[str] = field(default_factory=lambda: (
        os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY")
    ))
    model: str = field(default_factory=lambda: os.getenv(
        "ANTHROPIC_MODEL",
        "claude-3-sonnet-20240229"
    ))
    probe_model: str = "claude-3-haiku-20240307"


@dataclass
class RouterConfig:
    """Provider selection, timeouts and failure accounting."""
    request_timeout: float = field(default_factory=lambda: _env_float("AI_REQUEST_TIMEOUT", 30.0))
    probe_timeout: float = 10.0
    failure_threshold: int = field(default_factory=lambda: _env_int("AI_FAILURE_THRESHOLD", 3))
    max_message_length: int = field(default_factory=lambda: _env_int("AI_MAX_MESSAGE_LENGTH", 4000))
    probe_on_startup: bool = True


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "dev"))  # 'dev' or 'json'
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    configure: bool = True  # False leaves the root logger untouched (tests, embedding)


@dataclass
class ApiConfig:
    """Configuration for the HTTP service."""
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8000))
    rate_limit_enabled: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class AuthConfig:
    """Bearer token settings used to recognise privileged callers."""
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY", ""))
    algorithm: str = "HS256"
    access_token_expire_minutes: int = field(
        default_factory=lambda: _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 1440)
    )
    privileged_roles: List[str] = field(default_factory=lambda: ["admin"])


@dataclass
class Config:
    """Main configuration class."""
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    def validate(self) -> 'Config':
        """
        Check value ranges.

        Raises:
            InvalidConfigError: If a value is out of range
        """
        if self.router.request_timeout <= 0:
            raise InvalidConfigError(
                "router.request_timeout", self.router.request_timeout, "must be positive"
            )
        if self.router.probe_timeout <= 0:
            raise InvalidConfigError(
                "router.probe_timeout", self.router.probe_timeout, "must be positive"
            )
        if self.router.failure_threshold < 1:
            raise InvalidConfigError(
                "router.failure_threshold", self.router.failure_threshold, "must be at least 1"
            )
        if self.router.max_message_length < 1:
            raise InvalidConfigError(
                "router.max_message_length", self.router.max_message_length, "must be at least 1"
            )
        if self.logging.format not in ("dev", "json"):
            raise InvalidConfigError("logging.format", self.logging.format, "must be 'dev' or 'json'")
        return self

    @classmethod
    def load_from_file(cls, config_path: Path) -> 'Config':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            Config instance with values from file merged with defaults
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = cls()
        config.apply_overrides(data)
        return config.validate()

    def apply_overrides(self, data: Dict[str, Any]) -> None:
        """
        Override known settings section by section.

        Unknown sections and keys are ignored so older config files keep loading.
        """
        sections = {
            'openai': self.openai,
            'anthropic': self.anthropic,
            'router': self.router,
            'logging': self.logging,
            'api': self.api,
            'auth': self.auth,
        }
        for section_name, section in sections.items():
            values = data.get(section_name)
            if not isinstance(values, dict):
                continue
            for key, value in values.items():
                if hasattr(section, key):
                    setattr(section, key, value)

    @classmethod
    def load_default(cls) -> 'Config':
        """
        Load default configuration.

        Looks for config files in this order:
        1. .bge-ai.yaml in current directory
        2. .bge-ai.yaml in home directory
        3. Default values (no file)

        Returns:
            Config instance
        """
        current_dir_config = Path(CONFIG_FILE_NAME)
        if current_dir_config.exists():
            return cls.load_from_file(current_dir_config)

        home_config = Path.home() / CONFIG_FILE_NAME
        if home_config.exists():
            return cls.load_from_file(home_config)

        return cls().validate()

    def to_yaml(self) -> str:
        """
        Convert configuration to YAML string.

        API keys and the token secret are never written out.

        Returns:
            YAML representation of config
        """
        data = {
            'openai': {
                'api_base': self.openai.api_base,
                'model': self.openai.model,
                'probe_model': self.openai.probe_model,
            },
            'anthropic': {
                'model': self.anthropic.model,
                'probe_model': self.anthropic.probe_model,
            },
            'router': {
                'request_timeout': self.router.request_timeout,
                'probe_timeout': self.router.probe_timeout,
                'failure_threshold': self.router.failure_threshold,
                'max_message_length': self.router.max_message_length,
                'probe_on_startup': self.router.probe_on_startup,
            },
            'logging': {
                'level': self.logging.level,
                'format': self.logging.format,
                'log_file': self.logging.log_file,
            },
            'api': {
                'host': self.api.host,
                'port': self.api.port,
                'rate_limit_enabled': self.api.rate_limit_enabled,
                'cors_origins': self.api.cors_origins,
            },
        }
        return yaml.dump(data, default_flow_style=False, sort_keys=False)
