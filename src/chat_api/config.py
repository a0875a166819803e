"""Chat API Service Configuration using Pydantic Settings.

Provides centralized configuration for the chat route service including:
- Provider settings (API key, endpoint, model, sampling limits)
- HTTP connection pool settings for the provider client
- Database connection settings
- Session verification settings
- Logging and CORS

Configuration is loaded from environment variables and .env files using
Pydantic Settings. The @lru_cache decorator ensures a single settings
instance is shared across the application.

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ARK_HOST: str = "ark.cn-beijing.volces.com"


class ServiceSettings(BaseSettings):
    """Core service configuration for chat-api.

    Settings are grouped by category:
    - Provider: Volcengine Ark (OpenAI-compatible) credentials and endpoint
    - Completion: model id, output cap, temperature, stream ceiling
    - HTTP pool: limits and timeouts for the provider connection
    - Database: async SQLAlchemy URL and pool sizing
    - Auth: session token verification
    - Service: logging, CORS, audit buffer

    Example:
        >>> settings = get_settings()
        >>> settings.chat_max_tokens
        1000

    Last Grunted: 10/14/2026 03:10:00 PM UTC
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore"
    )

    # Provider settings
    ark_api_key: Optional[str] = Field(default=None, description="API key for the LLM provider")
    ark_base_url: str = Field(
        default=f"https://{DEFAULT_ARK_HOST}/api/v3",
        description="OpenAI-compatible provider base URL",
    )
    ark_host_header: Optional[str] = Field(
        default=DEFAULT_ARK_HOST,
        description="Value sent as X-Volc-Host on every provider request",
    )

    # Completion settings
    chat_model: str = Field(default="ep-20250217132838-sbqxx", description="Provider model/endpoint id")
    title_model: Optional[str] = Field(default=None, description="Model used for title generation")
    chat_max_tokens: int = Field(default=1000, gt=0, description="Output token cap per completion")
    chat_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    chat_max_duration: float = Field(default=60.0, gt=0, description="Maximum stream duration in seconds")

    # HTTP pool settings
    http_max_connections: int = Field(default=100)
    http_max_keepalive: int = Field(default=20)
    http_timeout_connect: float = Field(default=5.0)
    http_timeout_read: float = Field(default=120.0)
    http_timeout_write: float = Field(default=30.0)
    http_timeout_pool: float = Field(default=10.0)

    # Database settings
    database_url: str = Field(default="postgresql+asyncpg://localhost/chatdb")
    sql_echo: bool = Field(default=False)
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=3600)

    # Auth settings
    auth_secret: Optional[str] = Field(default=None, description="Secret used to verify session tokens")
    auth_algorithm: str = Field(default="HS256")
    auth_cookie_name: str = Field(default="session_token")
    auth_trust_gateway_headers: bool = Field(
        default=False,
        description="Accept x-user-id from an authenticating gateway",
    )

    # Service settings
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    cors_origins: str = Field(default="http://localhost:3000", description="Comma-separated origins")
    audit_event_buffer: int = Field(default=1000)

    def get_provider_headers(self) -> Dict[str, str]:
        """Default headers attached to every provider request."""
        if not self.ark_host_header:
            return {}
        return {"X-Volc-Host": self.ark_host_header}

    def get_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_title_model(self) -> str:
        return self.title_model or self.chat_model


@lru_cache()
def get_settings() -> ServiceSettings:
    """Get cached singleton settings instance.

    Note:
        To reload settings (e.g., after env changes), call get_settings.cache_clear()
        before calling get_settings() again.
    """
    return ServiceSettings()
