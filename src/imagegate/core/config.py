"""Configuration management for the ImageGate gateway.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables (no prefix, so the
variable names match the deployment's existing ``SERVER_*`` / ``MODELSLAB_*``
conventions), allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Keyword arguments passed to ``GatewayConfig(...)``
2. Environment variables
3. .env file in the working directory
4. Default values defined in GatewayConfig

Example .env file:
    MODELSLAB_API_KEY=sk-...
    MODELSLAB_BASE_URL=https://modelslab.com/api/v6
    MODELSLAB_MAX_RETRIES=3
    SERVER_PORT=8080
    POLL_INTERVAL=2
    POLL_MAX_ATTEMPTS=30
    CORS_ALLOW_ORIGINS=https://app.example.com,https://admin.example.com

Required Settings
-----------------
``MODELSLAB_API_KEY`` has no default.  Loading the configuration without it
raises :class:`pydantic.ValidationError`, and the ``imagegate`` entry point
refuses to start.  Because of that there is no import-time global instance;
call :func:`load_config` from the process entry point instead.

Polling Budget
--------------
``poll_interval * poll_max_attempts`` is the upper bound on how long a single
request may wait for an asynchronous remote job (60 seconds by default).

Usage Example
-------------
    from imagegate.core.config import load_config

    config = load_config()
    print(config.modelslab_base_url)
    print(config.polling_budget_seconds)
"""

from __future__ import annotations

import json

from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class GatewayConfig(BaseSettings):
    """Main configuration for the ImageGate gateway.

    Attributes
    ----------
    Server Settings:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Listen port (1-65535)
        server_read_timeout : float
            Idle keep-alive timeout handed to uvicorn
        server_write_timeout : float
            Graceful shutdown timeout handed to uvicorn

    Remote API Settings:
        modelslab_api_key : str
            API key for the remote generation service (required)
        modelslab_base_url : str
            Base URL of the remote API, without trailing slash
        modelslab_max_retries : int
            Attempts for the initial submission
        modelslab_timeout : float
            Per-request HTTP timeout in seconds
        modelslab_key_in_header : bool
            Send the key as a bearer token instead of in the JSON body

    Polling Settings:
        poll_interval : float
            Seconds between status polls
        poll_max_attempts : int
            Poll ceiling before the request times out

    Notes
    -----
    - Configuration is immutable after initialization
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8080,
        description="Server port",
        ge=1,
        le=65535,
    )
    server_read_timeout: float = Field(
        default=5.0,
        description="Idle keep-alive timeout in seconds",
        gt=0,
    )
    server_write_timeout: float = Field(
        default=10.0,
        description="Graceful shutdown timeout in seconds",
        gt=0,
    )

    # Remote generation API
    modelslab_api_key: str = Field(
        ...,
        min_length=1,
        description="API key for the remote generation service",
    )
    modelslab_base_url: str = Field(
        default="https://modelslab.com/api/v6",
        description="Base URL of the remote generation API",
    )
    modelslab_max_retries: int = Field(
        default=3,
        description="Maximum attempts for the initial submission",
        ge=1,
        le=10,
    )
    modelslab_timeout: float = Field(
        default=30.0,
        description="Per-request HTTP timeout in seconds",
        gt=0,
    )
    modelslab_key_in_header: bool = Field(
        default=False,
        description="Send the API key as an Authorization header instead of in the body",
    )

    # Polling
    poll_interval: float = Field(
        default=2.0,
        description="Seconds between status polls",
        ge=0,
    )
    poll_max_attempts: int = Field(
        default=30,
        description="Maximum polls before a request times out",
        ge=1,
    )

    # Ambient
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware",
    )

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        """Accept ``*``, a comma-separated list, or a JSON array."""
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @property
    def polling_budget_seconds(self) -> float:
        """Upper bound on time spent polling a single job."""
        return self.poll_interval * self.poll_max_attempts


def load_config(**overrides) -> GatewayConfig:
    """Load configuration from the environment.

    Args:
        **overrides: Explicit values that take precedence over the environment

    Returns:
        A fresh :class:`GatewayConfig`

    Raises:
        pydantic.ValidationError: If a required value (the API key) is missing
            or any value is out of range
    """
    return GatewayConfig(**overrides)
