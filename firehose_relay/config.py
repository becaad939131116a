"""Configuration module for the firehose relay service."""

import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # Service
    service_name: str = Field(default="firehose-relay")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Upstream firehose
    upstream_url: str = Field(default="wss://bsky.network/xrpc/com.atproto.sync.subscribeRepos")
    upstream_connect_timeout: float = Field(default=10.0)
    upstream_max_size: int = Field(default=5 * 1024 * 1024)  # frames can carry large CAR slices

    # Per-session relay behaviour
    rate_limit_max_messages: int = Field(default=15)
    rate_limit_window_seconds: float = Field(default=1.0)
    send_queue_size: int = Field(default=64)

    # Outbound HTTP (DID directory, account service)
    http_timeout: float = Field(default=5.0)
    plc_directory_url: str = Field(default="https://plc.directory")

    # Subscriber authentication
    baas_endpoint: str = Field(default="")
    project_id: str = Field(default="")
    appwrite_api_key: str = Field(default="")
    debug: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    def __init__(self, **kwargs):
        # Load from environment variables
        env_values = {}

        # Map environment variables to settings
        env_mapping = {
            "SERVICE_NAME": "service_name",
            "HOST": "host",
            "PORT": "port",
            "UPSTREAM_URL": "upstream_url",
            "UPSTREAM_CONNECT_TIMEOUT": "upstream_connect_timeout",
            "UPSTREAM_MAX_SIZE": "upstream_max_size",
            "RATE_LIMIT_MAX_MESSAGES": "rate_limit_max_messages",
            "RATE_LIMIT_WINDOW_SECONDS": "rate_limit_window_seconds",
            "SEND_QUEUE_SIZE": "send_queue_size",
            "HTTP_TIMEOUT": "http_timeout",
            "PLC_DIRECTORY_URL": "plc_directory_url",
            "BAAS_ENDPOINT": "baas_endpoint",
            "PROJECT_ID": "project_id",
            "APPWRITE_API_KEY": "appwrite_api_key",
            "DEBUG": "debug",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                # Convert types
                if field_name in ["port", "upstream_max_size", "rate_limit_max_messages", "send_queue_size"]:
                    try:
                        value = int(value)
                    except ValueError:
                        pass
                elif field_name in ["upstream_connect_timeout", "rate_limit_window_seconds", "http_timeout"]:
                    try:
                        value = float(value)
                    except ValueError:
                        pass
                elif field_name in ["debug"]:
                    value = value.lower() in ("true", "1", "yes", "on")

                env_values[field_name] = value

        # Merge kwargs with env values (kwargs take precedence)
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)


# Global settings instance
settings = Settings()
