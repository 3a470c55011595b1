"""Configuration using pydantic-settings."""

from pydantic_settings import BaseSettings

DEFAULT_IP_LOOKUP_SERVICE = "https://api.ipify.org"


class ServiceSettings(BaseSettings):
    """Service configuration, read once from the environment at startup."""

    host: str = "0.0.0.0"
    port: int = 3003
    headless: bool = True
    block_media: bool = False

    proxy_server: str | None = None
    proxy_username: str | None = None
    proxy_password: str | None = None

    # WebRTC leak masking
    proxy_ip: str | None = None
    public_ip: str | None = None
    ip_lookup_service: str = DEFAULT_IP_LOOKUP_SERVICE

    preset: str = "stealth"

    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "", "frozen": True}


settings = ServiceSettings()
