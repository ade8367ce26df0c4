from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "project-mail"
    app_env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/mail.sqlite"

    # JWT
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60

    # Attachments
    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    max_attachments: int = 10

    preview_length: int = 120
    notifications_page_size: int = 50

    # Roles
    super_admin_role: str = "SUPER_ADMIN"
    excluded_suggestion_roles: list[str] = ["SUPER_ADMIN", "ADMIN"]

    # Periodic trigger
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 24 * 60 * 60
    scheduler_run_on_startup: bool = True

    # Real-time
    cors_origins: list[str] = ["*"]
    socketio_path: str = "socket.io"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
