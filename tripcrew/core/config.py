from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from typing import Optional

load_dotenv()

class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Redis settings
    REDIS_URL: str
    CACHE_TTL_SECONDS: int = 1800

    # Invitation e-mails, skipped when SMTP_HOST is empty
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    # Menu parsing through an OpenAI-compatible endpoint
    OPENROUTER_API_KEY: Optional[str] = None
    BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_MODEL: str = "google/gemini-2.0-flash-001"

    EXCHANGE_RATE_API_URL: str = "https://open.er-api.com/v6/latest"
    DEFAULT_CURRENCY: str = "USD"

    # Create missing tables on startup; turn off once migrations own the schema
    AUTO_CREATE_TABLES: bool = True

    PROJECT_NAME: str = "TripCrew API"
    PROJECT_VERSION: str = "1.0.0"
    PROJECT_DESCRIPTION: str = "Group trip planning: RSVPs, shared spends, settlements, choices, lists and lift-shares"

    PASSWORD_MIN_LENGTH: int = 8
    APP_NAME: str = "TripCrew"

    class Config:
        env_file = ".env"


settings = Settings()
