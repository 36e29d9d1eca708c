from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/fintrack"
    app_env: str = "dev"
    app_cors_origins: str = "*"
    auth_secret: str = "change-me"
    auth_cookie_name: str = "fintrack_session"
    auth_session_hours: float = 24 * 7
    # Custom OpenAI-compatible backend (LM Studio, self-hosted gateways, ...)
    ai_base_url: str | None = None
    ai_model: str | None = None
    ai_api_key: str | None = None
    ai_api_key_header: str = "Authorization"
    ai_api_key_prefix: str = "Bearer"
    # Hosted providers, tried in this order after the custom backend
    groq_api_key: str | None = None
    groq_api_key_2: str | None = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.3-70b-versatile"
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: str | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    gemini_model: str = "gemini-1.5-flash"
    ai_timeout_seconds: float = 120.0
    # Bank statement import
    import_sample_rows: int = 35
    import_cell_preview_chars: int = 50
    classify_text_chars: int = 100
    # Web push (VAPID)
    vapid_public_key: str | None = None
    vapid_private_key: str | None = None
    vapid_subject: str = "mailto:admin@example.com"
    # Daily summary notifications
    daily_notifications_enabled: bool = True
    daily_notification_hour: int = 7
    daily_notification_minute: int = 0
    scheduler_timezone: str = "Asia/Ho_Chi_Minh"
    notification_schedule_path: str = "data/notification_schedule.json"
    cron_secret: str | None = None


settings = Settings()
