# This file loads env variables and must thus be imported before anything else.
from . import env_loader  # noqa: F401
from .env_loader import get_current_environment

import os
import logging

from fastapi import FastAPI, Depends, Response
from fastapi.middleware.cors import CORSMiddleware

from sopmaker.models.account import Caller
from .auth import require_viewer
from .errors import install_error_handlers
from .models import EnvironmentResponse
from .routers import (
    admin_router,
    auth_router,
    categories_router,
    comments_router,
    media_router,
    step_media_router,
    sops_router,
    steps_router,
)

"""FastAPI application setup for the SOP Maker API.

Exposes routes for authoring SOPs, their ordered steps and step media, reader
comments, plus identity sync and operator repair endpoints. This module
configures CORS, error rendering and logging behavior.
"""

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",  # Next.js dev server
    "http://127.0.0.1:3000",
]

logger = logging.getLogger(__name__)


def get_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(title="SOP Maker API")
app.include_router(sops_router)
app.include_router(steps_router)
app.include_router(step_media_router)
app.include_router(media_router)
app.include_router(comments_router)
app.include_router(categories_router)
app.include_router(auth_router)
app.include_router(admin_router)
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


# Configure basic logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s - %(filename)s:%(lineno)d",
    datefmt="%Y-%m-%d %H:%M:%S",
)
# Configure the logging for the API itself if the user specifies it.
if "LOG_LEVEL" in os.environ:
    match os.environ["LOG_LEVEL"].upper():
        case "DEBUG":
            log_level = logging.DEBUG
        case "INFO":
            log_level = logging.INFO
        case "WARNING":
            log_level = logging.WARNING
        case "ERROR":
            log_level = logging.ERROR
        case "CRITICAL":
            log_level = logging.CRITICAL
        case _:
            raise ValueError(f"Invalid log level: {os.environ['LOG_LEVEL']}")
    logging.getLogger("sopmaker").setLevel(log_level)


@app.get("/api/health")
@app.options("/api/health")
def health_check(response: Response) -> dict[str, str]:
    """Health check endpoint that returns 200 status with CORS from anywhere."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "*"
    return {"status": "healthy"}


@app.get("/api/environment", response_model=EnvironmentResponse)
def get_environment(_caller: Caller = Depends(require_viewer)) -> EnvironmentResponse:
    """Get the current environment configuration."""
    environment = get_current_environment()
    return EnvironmentResponse(environment=environment)
