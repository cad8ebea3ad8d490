import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from flowforge/.env before settings are read
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

from flowforge.core.config import settings, validate_config  # noqa: E402
from flowforge.core.database import create_all_tables  # noqa: E402
from flowforge.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from flowforge.core.logging import configure_logging  # noqa: E402
from flowforge.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from flowforge.core.validation import validate_env  # noqa: E402
from flowforge.features.plans.registry import get_registry  # noqa: E402
from flowforge.api import billing, designs, health, profile, webhooks  # noqa: E402

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("flowforge")
    logger.info("Starting FlowForge backend...")
    app.state.startup_time = time.time()
    create_all_tables()
    get_registry()
    try:
        yield
    finally:
        logger.info("Stopping FlowForge backend...")


app = FastAPI(title="FlowForge - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(billing.router, prefix="/api", tags=["billing"])
app.include_router(designs.router, prefix="/api", tags=["designs"])
app.include_router(profile.router, prefix="/api", tags=["profile"])
app.include_router(health.root_router, tags=["health"])
