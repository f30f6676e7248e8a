from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    BASE_URL: Optional[str] = None

    DEFAULT_VALIDITY_MINUTES: int = 30
    SHORTCODE_LENGTH: int = 6
    SHORTCODE_MAX_ATTEMPTS: int = 100_000

    # Diagnostic sink
    LOG_API_URL: str = "http://20.244.56.144/evaluation-service/logs"
    LOG_API_AUTH_TOKEN: str = ""
    LOG_API_TIMEOUT_SECONDS: float = 5.0
    LOG_SINK_ENABLED: bool = True
    LOG_QUEUE_SIZE: int = 1000
    LOG_SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

    # Request log file, empty path disables it
    ACCESS_LOG_PATH: str = "logs.txt"
    ACCESS_LOG_FLUSH_SECONDS: float = 3.0

    GEO_LOOKUP_ENABLED: bool = True
    GEO_API_URL: str = "http://ip-api.com/json/{ip}"
    GEO_TIMEOUT_SECONDS: float = 2.0

    class Config:
        env_file = ".env"

settings = Settings()
