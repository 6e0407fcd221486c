"""Configuration management for the application."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class ProviderConfig:
    """Credentials and HTTP timeouts for the external data providers."""

    brapi_token: str = ""
    alphavantage_api_key: str = "demo"
    connect_timeout: float = 2.0  # seconds
    read_timeout: float = 2.0  # seconds

    def __post_init__(self):
        self.brapi_token = self.brapi_token.strip()
        self.alphavantage_api_key = self.alphavantage_api_key.strip()

    @property
    def timeout(self) -> tuple[float, float]:
        """Connect/read timeout pair in the form ``requests`` expects."""
        return (self.connect_timeout, self.read_timeout)


@dataclass
class RetryConfig:
    """Rate-limit retry configuration for throttle-prone providers."""

    max_attempts: int = 3
    base_delay: float = 2.0  # seconds, multiplied by the attempt number


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str | None = None


def _millis_env(name: str, default: str) -> float:
    return int(os.getenv(name, default)) / 1000


class Config:
    """Main application configuration."""

    def __init__(self):
        self.providers = ProviderConfig(
            brapi_token=os.getenv("BRAPI_TOKEN", ""),
            alphavantage_api_key=os.getenv("ALPHAVANTAGE_API_KEY", "demo"),
            connect_timeout=_millis_env("PROVIDER_CONNECT_TIMEOUT_MS", "2000"),
            read_timeout=_millis_env("PROVIDER_READ_TIMEOUT_MS", "2000"),
        )

        self.retry = RetryConfig(
            max_attempts=int(os.getenv("YAHOO_MAX_RETRIES", "3")),
            base_delay=_millis_env("YAHOO_BACKOFF_MS", "2000"),
        )

        self.server = ServerConfig(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_file=os.getenv("LOG_FILE") or None,
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if self.providers.connect_timeout <= 0:
            raise ValueError("PROVIDER_CONNECT_TIMEOUT_MS must be positive")
        if self.providers.read_timeout <= 0:
            raise ValueError("PROVIDER_READ_TIMEOUT_MS must be positive")
        if self.retry.max_attempts < 1:
            raise ValueError("YAHOO_MAX_RETRIES must be at least 1")
        if self.retry.base_delay < 0:
            raise ValueError("YAHOO_BACKOFF_MS must not be negative")
        if not (0 < self.server.port < 65536):
            raise ValueError(f"Invalid PORT: {self.server.port}")

        return True


# Global config instance
config = Config()
