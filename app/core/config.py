from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./daily_objectives.db"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Bump the key to hard-invalidate documents written by an older schema.
    STORAGE_KEY: str = "daily-objectives-app-v3"

    # Cadence of the background day-boundary check.
    ROLLOVER_CHECK_SECONDS: float = 60.0
    ROLLOVER_SCHEDULER_ENABLED: bool = True

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "http://localhost:5173,http://127.0.0.1:5173"
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
