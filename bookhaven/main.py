# bookhaven/main.py
import logging
import sys
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import config
from .catalog.router import router as catalog_router
from .errors import CatalogError
from .reviews.router import router as reviews_router
from .session import SessionRegistry
from .storage import Tables


logger = logging.getLogger(__name__)


def setup_logging(log_level: str = config.LOG_LEVEL) -> None:
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=config.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_app(tables: Optional[Tables] = None) -> FastAPI:
    app = FastAPI(
        title="BookHaven",
        description=(
            "Community book catalogue: browse books, add your own, "
            "and rate and review what you have read."
        ),
        version="1.0.0",
    )
    app.state.sessions = SessionRegistry(tables or Tables.from_config())

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/")
    def health_check():
        return {"status": "ok"}

    app.include_router(catalog_router)
    app.include_router(reviews_router)
    return app


setup_logging()
app = create_app()
