"""Configuration for the search/suggest HTTP API.

Reads values from environment variables or a .env file (shared with indexing).
"""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import Field

load_dotenv(override=True)


class Settings(BaseSettings):
    """Runtime knobs for the API server.

    Fields
    ------
    index_name
        Search index to query.
    api_host / api_port
        Bind address for uvicorn.
    default_page_size
        Page size used when the client does not send ``size``.
    max_page_size
        Upper bound applied to client-supplied page sizes.
    suggest_size
        Entries per author/title/genre suggestion list.
    year_suggest_size
        Year buckets requested before prefix filtering.
    facet_size
        Buckets per facet on the search endpoint.
    cors_origins
        Origins allowed to call the API from a browser.
    """

    index_name: str = Field("books", env="INDEX_NAME")
    api_host: str = Field("0.0.0.0", env="API_HOST")
    api_port: int = Field(6001, env="API_PORT")

    default_page_size: int = Field(12, env="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(100, env="MAX_PAGE_SIZE")
    suggest_size: int = Field(5, env="SUGGEST_SIZE")
    year_suggest_size: int = Field(10, env="YEAR_SUGGEST_SIZE")
    facet_size: int = Field(20, env="FACET_SIZE")

    cors_origins: list[str] = Field(["*"], env="CORS_ORIGINS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
