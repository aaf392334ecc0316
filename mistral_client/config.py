"""Configuration management for the Mistral client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

API_KEY_ENV = "MISTRAL_API_KEY"
DEFAULT_BASE_URL = "https://api.mistral.ai/v1"


@dataclass(frozen=True)
class ClientOptions:
    """Validated settings for MistralClient."""
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0
    throw_on_error: bool = False
    validate_requests: bool = True

    # Streaming
    enable_streaming_recovery: bool = True
    streaming_read_timeout: float | None = 60.0

    # Response cache for non-streaming chat completions
    enable_caching: bool = False
    cache_expiration_minutes: float = 5.0

    def validate(self) -> None:
        """Check option values.

        Raises:
            ValueError: If any option is missing or out of range.
        """
        if not self.api_key or not self.api_key.strip():
            raise ValueError(
                "API key is required. Set it via configuration or the "
                f"{API_KEY_ENV} environment variable."
            )

        if not self.base_url or not self.base_url.strip():
            raise ValueError("Base URL is required.")

        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Base URL must be a valid HTTP or HTTPS URL.")

        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than 0.")

        if self.streaming_read_timeout is not None and self.streaming_read_timeout <= 0:
            raise ValueError("streaming read_timeout must be greater than 0.")

        if self.cache_expiration_minutes <= 0:
            raise ValueError("cache expiration_minutes must be greater than 0.")


class Configuration:
    """Manages configuration and environment variables for the Mistral client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config = self._load_yaml_config(config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if config_path is None:
            config_path = os.path.join(os.path.dirname(__file__), "config.yaml")
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def mistral_api_key(self) -> str:
        """Get the Mistral API key.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        api_key = os.getenv(API_KEY_ENV)
        if not api_key:
            raise ValueError(
                f"API key '{API_KEY_ENV}' not found in environment variables"
            )
        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration from YAML.

        Returns:
            Client configuration dictionary with validated values.

        Raises:
            ValueError: If required client parameters are missing.
        """
        client_config = self._config.get("client", {})

        required_keys = ["base_url", "timeout_seconds"]
        for key in required_keys:
            if key not in client_config:
                raise ValueError(
                    f"client.{key} must be explicitly configured in config.yaml"
                )

        return client_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming decoder configuration from YAML.

        Returns:
            Streaming configuration dictionary.
        """
        return self._config.get("streaming", {})

    def get_cache_config(self) -> dict[str, Any]:
        """Get response cache configuration from YAML.

        Returns:
            Cache configuration dictionary.
        """
        return self._config.get("cache", {})

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})

    def get_client_options(self) -> ClientOptions:
        """Build validated ClientOptions from YAML and the environment."""
        client_config = self.get_client_config()
        streaming_config = self.get_streaming_config()
        cache_config = self.get_cache_config()

        options = ClientOptions(
            api_key=self.mistral_api_key,
            base_url=client_config["base_url"],
            timeout_seconds=client_config["timeout_seconds"],
            throw_on_error=client_config.get("throw_on_error", False),
            validate_requests=client_config.get("validate_requests", True),
            enable_streaming_recovery=streaming_config.get("enable_recovery", True),
            streaming_read_timeout=streaming_config.get("read_timeout", 60.0),
            enable_caching=cache_config.get("enabled", False),
            cache_expiration_minutes=cache_config.get("expiration_minutes", 5.0),
        )
        options.validate()
        return options
