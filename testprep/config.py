from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # ======================
    # Database (Render-ready)
    # ======================
    DATABASE_URL: str = "sqlite:///./testprep.db"

    # =========
    # App
    # =========
    APP_NAME: str = "Test Prep Attempt Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "*"

    # =========
    # JWT
    # =========
    JWT_SECRET_KEY: str = Field(...)
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # =========
    # Attempts
    # =========
    ATTEMPT_EXPIRY_GRACE_MINUTES: int = 15
    MAX_ANSWER_TIME_SECONDS: int = 3600
    SEED_DEMO_DATA: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
