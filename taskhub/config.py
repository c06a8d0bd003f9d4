from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TASKHUB_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite:///./taskhub.db"

    # Mail API (password reset)
    mail_api_base_url: str = "https://msg.ovrx.ru"
    password_reset_endpoint: str = "/auth/password-reset"
    mail_timeout: float = 30.0

    # Security
    token_expiry: int = 24 * 60 * 60  # 24 hours
    reset_token_expiry: int = 60 * 60  # 1 hour
    min_password_length: int = 6

    # JWT Settings
    secret_key: str = "change-me-taskhub-jwt-secret-with-enough-characters-to-be-safe"
    algorithm: str = "HS256"

    # Object storage (avatars)
    storage_dir: str = "./storage"
    storage_base_url: str = "/storage"

    # Chat
    channel_message_limit: int = 100

    # HTTP
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


settings = Settings()
