import os
from dotenv import load_dotenv
from loguru import logger


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Centralized configuration loader using python-dotenv.

    Loads all environment variables from .env file and provides
    typed access throughout the application. Every setting has a
    default so a bare checkout boots against SQLite and a local Redis.
    """

    # Application
    APP_ENV: str
    LOG_LEVEL: str
    LOG_FILE: str

    # Job Store
    DATABASE_URL: str

    # Task Queue (Celery + Redis)
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    CELERY_WORKER_CONCURRENCY: int
    CELERY_TASK_TIME_LIMIT: int
    QUEUE_MAX_RETRIES: int
    QUEUE_RETRY_DELAY: int
    QUEUE_RETRY_BACKOFF_MAX: int
    QUEUE_DEFAULT_LANE: str

    # Webhook authenticity
    GITLAB_WEBHOOK_SECRET: str | None
    GITHUB_WEBHOOK_SECRET: str | None
    ALLOW_UNSIGNED_WEBHOOKS: bool

    # LLM request shape
    LLM_MAX_TOKENS: int
    LLM_TEMPERATURE: float
    LLM_TIMEOUT: int

    # Outbound source-control calls
    HTTP_TIMEOUT: int

    def __init__(self, config_file: str | None = None) -> None:
        """
        Load configuration from .env file.

        Args:
            config_file: Optional path to custom .env file

        Raises:
            ValueError: If a numeric setting is out of range or the
                        default queue lane is unknown.
        """
        load_dotenv(config_file)

        self.APP_ENV = os.getenv("APP_ENV", "development")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE = os.getenv("LOG_FILE", "./logs/app.log")

        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")

        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", redis_url)
        self.CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", redis_url)
        self.CELERY_WORKER_CONCURRENCY = int(os.getenv("CELERY_WORKER_CONCURRENCY", "10"))
        self.CELERY_TASK_TIME_LIMIT = int(os.getenv("CELERY_TASK_TIME_LIMIT", "300"))
        self.QUEUE_MAX_RETRIES = int(os.getenv("QUEUE_MAX_RETRIES", "3"))
        self.QUEUE_RETRY_DELAY = int(os.getenv("QUEUE_RETRY_DELAY", "60"))
        self.QUEUE_RETRY_BACKOFF_MAX = int(os.getenv("QUEUE_RETRY_BACKOFF_MAX", "600"))
        self.QUEUE_DEFAULT_LANE = os.getenv("QUEUE_DEFAULT_LANE", "default")

        self.GITLAB_WEBHOOK_SECRET = os.getenv("GITLAB_WEBHOOK_SECRET") or None
        self.GITHUB_WEBHOOK_SECRET = os.getenv("GITHUB_WEBHOOK_SECRET") or None
        # Unsigned deliveries are refused in production unless explicitly allowed
        self.ALLOW_UNSIGNED_WEBHOOKS = _env_bool(
            "ALLOW_UNSIGNED_WEBHOOKS", self.APP_ENV != "production"
        )

        self.LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "4096"))
        self.LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
        self.LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "60"))

        self.HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "30"))

        self._validate()

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def webhook_secret_for(self, platform: str) -> str | None:
        """Return the globally configured webhook secret for a platform, if any."""
        if platform == "gitlab":
            return self.GITLAB_WEBHOOK_SECRET
        if platform == "github":
            return self.GITHUB_WEBHOOK_SECRET
        return None

    def _validate(self) -> None:
        """Validate configuration values."""
        if self.CELERY_WORKER_CONCURRENCY < 1:
            raise ValueError("CELERY_WORKER_CONCURRENCY must be at least 1")

        if self.QUEUE_MAX_RETRIES < 0:
            raise ValueError("QUEUE_MAX_RETRIES must not be negative")

        if self.QUEUE_DEFAULT_LANE not in ("critical", "default", "low"):
            raise ValueError(
                f"QUEUE_DEFAULT_LANE must be one of critical, default, low "
                f"(got {self.QUEUE_DEFAULT_LANE!r})"
            )

        if not 0.0 <= self.LLM_TEMPERATURE <= 2.0:
            raise ValueError("LLM_TEMPERATURE must be between 0.0 and 2.0")

        if self.is_production and self.ALLOW_UNSIGNED_WEBHOOKS:
            logger.warning(
                "ALLOW_UNSIGNED_WEBHOOKS is enabled in production; "
                "webhooks without a configured secret will be accepted"
            )
