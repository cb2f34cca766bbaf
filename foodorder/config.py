from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str = "dev-secret-change-me"
    DB_URL: str = "sqlite:///./foodorder.db"
    DB_TIMEOUT_SEC: float = 10
    JWT_ISS: str = "foodorder"
    JWT_EXP_MIN: int = 12*60
    LOG_LEVEL: str = "INFO"

    # pricing
    GST_RATE: float = 0.05
    DEFAULT_ESTIMATED_TIME: int = 30

    # bounded retries for optimistic writes (checkout, redeem, status updates)
    REDEEM_MAX_ATTEMPTS: int = 5

    # table/room access codes
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    CODEGEN_TIMEOUT_SEC: float = 5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
