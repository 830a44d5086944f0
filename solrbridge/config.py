from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "solrbridge/.env"), env_ignore_empty=True, extra="ignore"
    )

    ENVIRONMENT: Literal["local", "staging", "development", "production"] = "local"
    SOLRBRIDGE_SERVICE_NAME: str = "solrbridge"

    SOLR_BASE_URL: str = "http://localhost:8983/solr"
    SOLR_TIMEOUT_SECONDS: float = 30.0
    # rows requested per cursorMark page
    SOLR_PAGE_SIZE: int = 500
    SOLR_UNIQUE_KEY: str = "id"
    # unique() in the JSON facet API is only exact on a single shard
    SOLR_EXACT_DISTINCT_COUNT: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def solr_base_url(self) -> str:
        return self.SOLR_BASE_URL.rstrip("/")


settings = Settings()  # type: ignore
