from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from indexer_metrics.schemas import ClientsPolicy

StorageBackend = Literal['memory', 'redis']


class Settings(BaseSettings):
    model_config = {
        'extra': 'ignore',
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
        'frozen': True,
    }

    API_HOST: str = '0.0.0.0'
    API_PORT: int = 8787
    API_RELOAD: bool = False

    SERVICE_NAME: str = 'indexer-metrics-collector'
    SERVICE_VERSION: str = '0.1.0'
    LOG_LEVEL: str = 'INFO'
    LOG_FORMAT: str = 'text'

    STORAGE_BACKEND: StorageBackend = 'memory'

    REDIS_HOST: str = 'localhost'
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0
    REDIS_KEY_PREFIX: str = 'indexer-metrics:'

    CLIENTS: ClientsPolicy = Field(default_factory=dict)
    PROMETHEUS_DEFAULT_LABELS: dict[str, str] = Field(default_factory=dict)


settings = Settings()
