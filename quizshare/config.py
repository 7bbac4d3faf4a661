from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-1.5-flash"
    gemini_api_key: str = ""
    llm_timeout: float = 60.0
    llm_max_attempts: int = 1

    rapidapi_key: str = ""
    rapidapi_host: str = ""

    db_path: str = "./data/quizshare.db"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    public_base_url: str = "http://localhost:8000"
    cors_origins: list[str] = ["*"]

    default_num_questions: int = 5
    default_num_options: int = 4

    leaderboard_poll_interval: float = 5.0
    quiz_fetch_retries: int = 2
    quiz_fetch_retry_delay: float = 2.0
    client_timeout: float = 10.0

    log_level: str = "INFO"

    class Config:
        env_prefix = "QUIZSHARE_"
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
