import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env before settings are read (skipped under pytest)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from projecthub.core.config import settings, validate_config
from projecthub.core.logging import configure_logging
from projecthub.core.middleware.request_id import RequestIdMiddleware
from projecthub.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from projecthub.api import health, projects, users

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("projecthub")
    logger.info("Starting projecthub backend...")
    try:
        yield
    finally:
        logger.info("Stopping projecthub backend...")


def create_app() -> FastAPI:
    app = FastAPI(title="projecthub", lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # CORS (adjust origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(projects.router, tags=["projects"])
    app.include_router(users.router, tags=["users"])
    app.include_router(health.root_router, tags=["health"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("projecthub.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=settings.ENV == "development")
