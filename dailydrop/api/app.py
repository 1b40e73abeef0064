"""FastAPI server for DailyDrop"""

from __future__ import annotations

import sqlite3
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dailydrop.api.routes.analyses import router as analyses_router
from dailydrop.api.routes.health import router as health_router
from dailydrop.config import API_HOST, API_PORT, APP_VERSION, is_development
from dailydrop.infrastructure.database import init_database, validate_schema
from dailydrop.observability.logging import get_logger, resolve_level_name
from dailydrop.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="DailyDrop API", version=APP_VERSION)

logger = get_logger(__name__)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Validation error handler that doesn't echo request bodies back to the client.
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


ALLOWED_ORIGINS: list[str] = []

# Allow local frontends in development only
if is_development():
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-User-Id", "X-Request-ID"],
)

app.include_router(health_router)
app.include_router(analyses_router)


@app.on_event("startup")
async def initialize_database() -> None:
    """Create the schema if needed and fail fast if the database is broken

    Side Effects:
        - Creates the SQLite file and tables at DAILYDROP_DB_PATH
        - May raise RuntimeError (crashes the app)
    """
    try:
        init_database()
        validate_schema()
        logger.info("Database initialization complete")
    except sqlite3.OperationalError as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e
    except ValueError as e:
        logger.critical("Database schema invalid: %s", e)
        raise RuntimeError(f"Database schema validation failed: {e}") from e

    log_event("api.startup", service="dailydrop", version=APP_VERSION)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "DailyDrop API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "analyses": "/api/analyses",
            "eligibility": "/api/analyses/eligibility",
            "preview": "/api/analyses/preview",
            "analysis_health": "/api/analyses/health",
        },
    }


def main() -> None:
    """Run the API with uvicorn (console script: dailydrop-api)."""
    import uvicorn

    uvicorn.run("dailydrop.api.app:app", host=API_HOST, port=API_PORT, log_level=resolve_level_name())
