from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # --- App Config ---
    APP_NAME: str = "BlogAPI"
    APP_ENV: str = "development"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DATABASE_URL: str | None = None
    POSTGRES_USER: str = "blog"
    POSTGRES_PASSWORD: str = "blog"
    POSTGRES_DB: str = "blog"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432

    # --- JWT / Auth ---
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Authorization ---
    # roles whose permissions apply regardless of resource ownership
    BYPASS_ROLES: list[str] = ["admin", "editor"]

    # --- Cache ---
    CACHE_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "api"
    POST_TTL: int = 300
    POST_LIST_TTL: int = 300
    STATS_TTL: int = 900
    ROLES_META_TTL: int = 3600
    CACHE_STALE_TTL: int = 3600
    CACHE_WAIT_TIMEOUT: float | None = None

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache()
def get_settings():
    return Settings()
