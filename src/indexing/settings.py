from __future__ import annotations

from pathlib import Path
from dotenv import load_dotenv

from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv(override=True)

DEFAULT_CATALOG = Path(__file__).resolve().parent / "data" / "books.json"


class Settings(BaseSettings):
    """Catalog seeding configuration.

    Fields
    ------
    index_name
        Name of the search index to (re)create and populate.
    catalog_file
        JSON file holding the list of book records to ingest.
    use_wikidata
        If *false*, name variants come only from the pre-seeded fallback table.
    wikidata_endpoint
        SPARQL endpoint queried for "said to be the same as" given names.
    wikidata_timeout
        Hard per-request timeout (seconds) for knowledge-graph lookups.
    wikidata_limit
        Maximum number of variant labels requested per lookup.
    wikidata_delay
        Pause (seconds) after each network lookup, to stay polite to the endpoint.
    wikidata_user_agent
        ``User-Agent`` header sent with knowledge-graph requests.
    preload_fallback_variants
        Pre-seed the variant cache with the curated name families at start-up.
    """

    index_name: str = Field("books", env="INDEX_NAME")
    catalog_file: Path = Field(DEFAULT_CATALOG, env="CATALOG_FILE")

    use_wikidata: bool = Field(True, env="USE_WIKIDATA")
    wikidata_endpoint: str = Field(
        "https://query.wikidata.org/sparql", env="WIKIDATA_ENDPOINT"
    )
    wikidata_timeout: float = Field(5.0, env="WIKIDATA_TIMEOUT")
    wikidata_limit: int = Field(30, env="WIKIDATA_LIMIT")
    wikidata_delay: float = Field(0.1, env="WIKIDATA_DELAY")
    wikidata_user_agent: str = Field(
        "BookSearchDemo/1.0 (contact: demo@example.com)", env="WIKIDATA_USER_AGENT"
    )
    preload_fallback_variants: bool = Field(True, env="PRELOAD_FALLBACK_VARIANTS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
