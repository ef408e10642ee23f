"""Configuration management for Scene Generator."""

from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google Cloud / Gemini API
    google_cloud_project: Optional[str] = None
    google_cloud_location: str = "us-central1"
    google_genai_use_vertexai: bool = False
    gemini_api_key: Optional[str] = None

    # Image generation backend
    generation_backend: str = "gemini"  # "gemini" or "proxy"
    generation_models: List[str] = Field(
        default_factory=lambda: ["gemini-3-pro-image-preview", "gemini-2.5-flash-image"]
    )
    generation_proxy_url: Optional[str] = None
    require_auth_token: bool = False  # reject generation calls without a page token

    # Video generation (Vidu)
    vidu_api_key: Optional[str] = None
    vidu_base_url: str = "https://api.vidu.com"
    video_model: str = "viduq1"
    video_duration: int = 5
    video_resolution: str = "1080p"
    video_prompt: str = "Animate this scene naturally"
    video_poll_interval: float = 1.0
    video_max_poll_attempts: int = 60

    # Upload and transport limits
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB
    transport_max_dimension: int = 2048
    transport_max_bytes: int = 4 * 1024 * 1024  # 4MB
    http_timeout: int = 120

    # Local artifact export
    storage_path: str = "./data"

    # Development
    debug: bool = False
    log_level: str = "INFO"

    # Model configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )

    def get_gemini_model_names(self) -> List[str]:
        """Get the ordered list of image models, most capable first."""
        return list(self.generation_models)

    def validate_api_keys(self) -> bool:
        """Check if required API keys are configured."""
        if self.generation_backend == "proxy":
            return bool(self.generation_proxy_url)
        if self.google_genai_use_vertexai:
            return bool(self.google_cloud_project)
        return bool(self.gemini_api_key)


# Global settings instance
settings = Settings()
