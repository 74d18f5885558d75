"""Configuration management for the DebtDesk case service."""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
import json


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = Field(default="debtdesk")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/v1")

    # Gateway
    gateway_backend: str = Field(default="memory")  # memory | supabase
    gateway_connect_attempts: int = Field(default=3)

    # Supabase
    supabase_url: Optional[str] = Field(default=None)
    supabase_key: Optional[str] = Field(default=None)

    # Cases
    cases_page_size: int = Field(default=10)

    # Chat
    messages_default_limit: int = Field(default=50)

    # Documents
    documents_bucket: str = Field(default="case-documents")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)  # 10MB
    allowed_upload_types: List[str] = Field(default=[
        "application/pdf",
        "image/jpeg",
        "image/png",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ])

    # Security
    cors_origins: str = Field(default="http://localhost:3000")

    # Monitoring
    enable_metrics: bool = Field(default=True)

    @field_validator("gateway_backend")
    @classmethod
    def validate_gateway_backend(cls, v: str) -> str:
        """Only the in-process and hosted gateways exist."""
        v = v.lower()
        if v not in ("memory", "supabase"):
            raise ValueError(f"Unknown gateway backend: {v}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env.lower() == "production"

    def get_cors_origins(self) -> List[str]:
        """Get CORS origins as list."""
        value = self.cors_origins.strip()
        if value.startswith('[') and value.endswith(']'):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass
        if ',' in value:
            return [url.strip() for url in value.split(',') if url.strip()]
        return [value]


# Global settings instance
settings = Settings()
