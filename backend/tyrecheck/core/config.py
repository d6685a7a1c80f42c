"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None  # Defaults to backend/data/logs

    # API
    API_V1_PREFIX: str = "/api/v1"
    # Stored as string to avoid pydantic-settings JSON parsing; use cors_origins_list property
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Analysis backend
    ANALYSIS_PROVIDER: str = "claude"  # claude | openai
    ANTHROPIC_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    CLAUDE_MODEL: str = "claude-3-opus-20240229"
    OPENAI_MODEL: str = "gpt-4o"
    DISPATCH_TIMEOUT_SECONDS: float = 25.0

    # Frame sampling
    MAX_FRAMES: int = 5
    FRAME_SCALE: float = 0.25  # Fraction of native resolution
    FRAME_JPEG_QUALITY: int = 50

    # Payload ceilings
    MAX_IMAGE_BYTES: int = 4 * MIB
    MAX_VIDEO_BYTES: int = 50 * MIB
    MAX_FRAMESET_BYTES: int = 9 * MIB

    # Rejected frames fail the view instead of only being logged
    QUALITY_GATE_STRICT: bool = False

    @field_validator('ANALYSIS_PROVIDER', mode='after')
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate the analysis provider name."""
        valid_providers = ['claude', 'openai']
        v = v.strip().lower()
        if v not in valid_providers:
            raise ValueError(f"ANALYSIS_PROVIDER must be one of {valid_providers}")
        return v

    @field_validator(
        'DISPATCH_TIMEOUT_SECONDS', 'MAX_FRAMES', 'MAX_IMAGE_BYTES',
        'MAX_VIDEO_BYTES', 'MAX_FRAMESET_BYTES', mode='after'
    )
    @classmethod
    def validate_positive(cls, v):
        """Limits must be strictly positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator('FRAME_SCALE', mode='after')
    @classmethod
    def validate_frame_scale(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("FRAME_SCALE must be in (0, 1]")
        return v

    @field_validator('FRAME_JPEG_QUALITY', mode='after')
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        if not 1 <= v <= 95:
            raise ValueError("FRAME_JPEG_QUALITY must be between 1 and 95")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
