from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Order Settlement Engine"
    API_V1_STR: str = "/api/v1"

    POSTGRES_SERVER: str
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    # Redis Configuration
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    # Order numbering
    ORDER_NUMBER_PREFIX: str = "ORD"
    ORDER_SEQUENCE_BACKEND: str = "redis"  # redis or memory
    ORDER_SEQUENCE_KEY: str = "orders:sequence"

    # Settlement
    DEFAULT_COMMISSION_RATE: float = 0.10  # 10% platform commission

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Split Reconciler Configuration (seconds)
    ENABLE_SPLIT_RECONCILER: bool = True
    SPLIT_RECONCILE_INTERVAL: int = 30  # How often the sweep runs
    SPLIT_RECONCILE_GRACE_SECONDS: int = 300  # Age before a PENDING_SPLIT is considered stale
    SPLIT_RECONCILE_ERROR_BACKOFF_SECONDS: int = 5

    # Store Configuration
    STORE_READ_RETRY_ATTEMPTS: int = 3

    # Metrics Configuration
    ENABLE_METRICS: bool = True

    # Logging Configuration
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FORMAT: str = "json"  # json or console (console for dev, json for prod)
    ENVIRONMENT: str = "development"  # development, staging, production
    SERVICE_NAME: str = "order-settlement-engine"
    SERVICE_VERSION: str = "v1.0.0"  # Deployment version (override with git SHA in prod)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def REDIS_URL(self) -> str:
        """Construct Redis connection URL"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()  # type: ignore
