from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    telegram_bot_token: str = ""
    timezone: str = "Europe/Moscow"
    sqlite_path: str = "data/taskpulse.db"
    log_path: str = "logs/taskpulse.log"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    planka_base_url: str = "http://localhost:3000/api"
    planka_username: str = ""
    planka_password: str = ""
    planka_board_id: str = ""
    planka_timeout_sec: float = 10.0
    planka_token_ttl_days: int = 30

    telegram_timeout_sec: int = 15
    http_max_retries: int = 3
    http_backoff_base_sec: float = 1.0

    reminders_interval_min: int = 5
    overdue_repeat_hours: int = 24
    digest_morning_hour: int = 9
    digest_evening_hour: int = 18
    digest_roles: list[str] = ["owner", "admin"]
    digest_item_cap: int = 5
    cleanup_hour: int = 3
    reminder_retention_days: int = 30


settings = Settings()
