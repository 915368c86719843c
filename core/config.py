from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./tabill.db"
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ALGORITHM: str = "HS256"

    ALLOWED_ORIGINS: str = "*"

    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_WEBHOOK_SECRET: str | None = None

    # Offline shell in front of the web client
    SHELL_UPSTREAM_URL: str = "http://localhost:3000"
    SHELL_CACHE_NAME: str = "tabill-cache-v2"
    SHELL_FETCH_TIMEOUT: float = 10.0
    SHELL_PERSISTENT_CACHE: bool = True
    SHELL_ENABLED: bool = True

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
