from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    service_name: str = Field(default="usage-service", alias="SERVICE_NAME")
    db_path: str = Field(default="./data/usage.db", alias="DB_PATH")
    db_busy_timeout_seconds: float = Field(default=30.0, alias="DB_BUSY_TIMEOUT_SECONDS")
    merge_retry_attempts: int = Field(default=3, alias="MERGE_RETRY_ATTEMPTS")
    max_submission_days: int = Field(default=3660, alias="MAX_SUBMISSION_DAYS")

settings = Settings()
