# src/biabook/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and installs CORS.
Business logic lives in `biabook.api.routes` and `biabook.search`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from biabook import __version__
from biabook.config.settings import get_settings
from biabook.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title="BiaBook Location API", version=__version__)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are client errors (400), like the core's own validation failures."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": {"code": "VALIDATION_ERROR", "message": "Invalid request", "errors": errors}},
    )


# CORS: origins come from settings (`api.cors_origins`) or
# BIABOOK_CORS_ORIGINS="http://localhost:3000,http://127.0.0.1:3000".
cors_origins = [s.strip() for s in os.getenv("BIABOOK_CORS_ORIGINS", "").split(",") if s.strip()]
cors_origins = cors_origins or list(get_settings().api.cors_origins)
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(router)
