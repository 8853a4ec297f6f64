"""Settings shared by *indexing* and *search*.

All values are sourced from environment variables (or a ``.env`` file loaded at
import time).  They control which search engine backend is used and how the
async client talks to it.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field
from dotenv import load_dotenv

load_dotenv(override=True)

class Settings(BaseSettings):
    """Search engine connection configuration.

    Fields
    ------
    es_host
        HTTP endpoint of the Elasticsearch / OpenSearch cluster.
    engine
        Client library to use: ``elasticsearch``, ``opensearch`` or ``auto``
        (OpenSearch for hosted OpenSearch URLs, Elasticsearch otherwise).
    es_request_timeout
        Per-request timeout in seconds for engine calls.
    log_level
        Root log level applied by the command-line entry points.
    """

    es_host: str = Field("http://localhost:9200", env="ES_HOST")
    engine: str = Field("auto", env="ENGINE")
    es_request_timeout: float = Field(10.0, env="ES_REQUEST_TIMEOUT")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
