"""HTTP API for federated suggestions and filtered search.

Endpoints
---------
* ``GET /api/health``  – engine cluster status
* ``GET /api/suggest`` – categorized autocomplete suggestions
* ``GET /api/search``  – paginated results with facets

Filter parameters (``authors``, ``genres``, ``years``) are comma-separated.

Run with::

    python -m src.search.api
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.common.capabilities import EngineCapabilities
from src.common.engine import EngineError, SearchEngine, create_engine
from src.common.settings import settings as common_settings
from src.search.filtered_search import FilteredSearchExecutor
from src.search.filters import ActiveFilters
from src.search.settings import settings
from src.search.suggest import SuggestionFederator

logger = logging.getLogger(__name__)


def create_app(engine: SearchEngine | None = None) -> FastAPI:
    """Build the application; *engine* defaults to the configured backend."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = engine or create_engine()
        capabilities = EngineCapabilities(active)
        app.state.engine = active
        app.state.federator = SuggestionFederator(active, capabilities)
        app.state.executor = FilteredSearchExecutor(active, capabilities)
        logger.info("API ready on index '%s' (%s)", settings.index_name, active.name)
        try:
            yield
        finally:
            if engine is None:
                await active.close()

    app = FastAPI(title="Book Federated Search API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        logger.error("%s error: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/api/health", tags=["Health"])
    async def health(request: Request):
        active: SearchEngine = request.app.state.engine
        try:
            cluster = await active.cluster_health()
        except EngineError as exc:
            return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})
        return {"status": "ok", active.name: cluster.get("status")}

    @app.get("/api/suggest", tags=["Search"])
    async def suggest(
        request: Request,
        q: Optional[str] = None,
        authors: str = "",
        genres: str = "",
        years: str = "",
    ):
        filters = ActiveFilters.from_params(authors, genres, years)
        return await request.app.state.federator.suggest(q, filters)

    @app.get("/api/search", tags=["Search"])
    async def search(
        request: Request,
        q: Optional[str] = None,
        page: int = 1,
        size: Optional[int] = None,
        authors: str = "",
        genres: str = "",
        years: str = "",
        sort: Optional[str] = None,
    ):
        filters = ActiveFilters.from_params(authors, genres, years)
        return await request.app.state.executor.search(
            q, filters, sort=sort, page=page, page_size=size
        )

    return app


def main() -> None:
    logging.basicConfig(
        level=common_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
