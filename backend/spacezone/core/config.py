from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "spacezone"
    app_env: str = "development"

    database_url: str = "sqlite:///./spacezone.sqlite"

    LOG_LEVEL: str = "INFO"

    # JWT
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Realtime
    PRESENCE_OFFLINE_DELAY_SECONDS: float = 5.0

    # Messaging
    MESSAGE_MAX_LENGTH: int = 1000
    MESSAGES_PAGE_SIZE: int = 50
    MESSAGES_PAGE_SIZE_MAX: int = 100
    MESSAGE_RATE_LIMIT: int = 30
    MESSAGE_RATE_WINDOW_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
