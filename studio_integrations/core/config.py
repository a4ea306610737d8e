"""Configuration settings for Studio Integrations."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="STUDIO_",
        env_file=".env",
        extra="ignore",
    )

    # HTTP
    http_timeout_seconds: float = 30.0
    validate_timeout_seconds: float = 5.0
    upload_timeout_seconds: float = 300.0

    # Credential resolution
    token_health_horizon_days: int = 7
    token_refresh_skew_seconds: int = 300
    # Platform-wide keys are a development convenience; workspaces must bring
    # their own key or connect OAuth in production.
    allow_platform_keys: bool = False
    platform_keys: dict[str, str] = {}

    # Encryption (base64-encoded 32 byte key)
    encryption_key: Optional[str] = None

    # Storage
    credential_db_path: Path = Path.home() / ".studio" / "credentials.db"
    versions_db_path: Path = Path.home() / ".studio" / "versions.db"

    # OAuth clients
    google_client_id: str = ""
    google_client_secret: str = ""
    linkedin_client_id: str = ""
    linkedin_client_secret: str = ""
    x_client_id: str = ""
    x_client_secret: str = ""
    reddit_client_id: str = ""
    reddit_client_secret: str = ""

    # AI providers, in selection priority order
    ai_provider_priority: list[str] = ["anthropic", "gemini", "openai"]
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_version: str = "2023-06-01"
    gemini_model: str = "gemini-2.0-flash"
    openai_model: str = "gpt-4o"
    openai_system_prompt: str = (
        "You are an expert content strategist. You create engaging content "
        "that drives measurable results."
    )

    # API endpoints
    anthropic_api_url: str = "https://api.anthropic.com/v1/messages"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    runway_api_base: str = "https://api.dev.runwayml.com/v1"
    runway_api_version: str = "2024-11-06"
    runway_model: str = "veo3.1"
    sora_api_base: str = "https://api.openai.com/v1"
    sora_model: str = "sora-2"
    youtube_upload_url: str = (
        "https://www.googleapis.com/upload/youtube/v3/videos"
        "?uploadType=resumable&part=snippet,status"
    )
    youtube_watch_url: str = "https://youtube.com/watch?v={video_id}"
    template_preview_url: str = "/studio/render/{job_id}/storyboard"

    # Render budget defaults (per workspace)
    render_budget_monthly_usd: float = 25.0
    render_attempts_daily_max: int = 20

    # Rate limits (requests per minute, per connector)
    linkedin_rate_limit: int = 100
    x_rate_limit: int = 300
    reddit_rate_limit: int = 60
    youtube_rate_limit: int = 60


settings = Settings()
