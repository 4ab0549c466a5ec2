"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings

NIM_BASE_URL = "https://integrate.api.nvidia.com/v1"


class ConfigurationError(Exception):
    """Raised when the proxy cannot start with the given settings."""


class Settings(BaseSettings):
    # Upstream NIM API
    nim_api_key: str = ""
    nim_base_url: str = NIM_BASE_URL
    upstream_timeout: float = 60.0  # Read/write/pool timeout in seconds
    upstream_connect_timeout: float = 10.0

    # Inbound authentication
    # Empty token = auth disabled
    custom_auth_token: str = ""
    custom_auth_header: str = "x-custom-auth"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    # Set by the AWS Lambda runtime; SSE relaying is unavailable there
    aws_lambda_function_name: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def auth_enabled(self) -> bool:
        return bool(self.custom_auth_token)

    @property
    def lambda_mode(self) -> bool:
        return bool(self.aws_lambda_function_name)


def check_settings(settings: Settings) -> None:
    """Refuse to serve without an upstream key."""
    if not settings.nim_api_key.strip():
        raise ConfigurationError("NIM_API_KEY environment variable is required")
