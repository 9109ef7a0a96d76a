from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Random-push-service"
    DATABASE_URL: str = "sqlite+aiosqlite:///./random_push.db"
    DB_ECHO: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    CACHE_TTL_SECONDS: int = 600
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    CLAIM_TASK_TIMEOUT: int = 10
    # 받기 가능 시간(분) / 조회 가능 기간(일)
    CLAIM_WINDOW_MINUTES: int = 10
    STATUS_WINDOW_DAYS: int = 7
    TOKEN_EXPIRY_DAYS: int = 7
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"
    TEST_DATABASE_URL: str = ""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()
