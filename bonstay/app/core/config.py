from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    BCRYPT_ROUNDS: int = 12

    # CORS origins (JSON list in the environment)
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Account lockout
    MAX_LOGIN_ATTEMPTS: int = 3

    # Per-IP login throttling
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 60
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS: int = 20

    # Record store calls
    STORE_TIMEOUT_SECONDS: float = 5.0
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_WAIT_SECONDS: float = 0.2

    LOG_LEVEL: str = "INFO"


settings = Settings()  # type: ignore[call-arg]
