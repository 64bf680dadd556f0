from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from taskflow.core.config import settings
from loguru import logger

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def setup_cors_middleware(app: FastAPI) -> None:
    """
    Allow the board frontend to call the API
    """
    allowed_origins = list(settings.cors_origins_list)
    if settings.ENVIRONMENT == "development":
        allowed_origins += [origin for origin in DEV_ORIGINS if origin not in allowed_origins]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "Authorization",
            "X-Trace-ID"
        ],
        expose_headers=["X-Trace-ID", "Retry-After"],
        max_age=600,
    )

    logger.info(f"CORS configured for {len(allowed_origins)} origins")
