"""FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ig_scraper import __version__
from ig_scraper.api.deps import close_deps, init_deps
from ig_scraper.api.routers import accounts, health, scrape
from ig_scraper.config import get_settings
from ig_scraper.platforms.instagram.errors import AdmissionRejected, AllAccountsExhausted

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_deps()
    yield
    await close_deps()


async def _admission_rejected(request: Request, exc: AdmissionRejected) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "statusCode": 429,
            "message": str(exc),
            "active": exc.active,
            "max": exc.max_concurrent,
        },
    )


async def _accounts_exhausted(request: Request, exc: AllAccountsExhausted) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "statusCode": 503,
            "message": str(exc),
            "username": exc.username,
            "attempts": exc.attempts,
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Instagram Post Scraper",
        description="Profile post extraction over rotating Instagram bot accounts",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AdmissionRejected, _admission_rejected)
    app.add_exception_handler(AllAccountsExhausted, _accounts_exhausted)

    app.include_router(health.router)
    app.include_router(accounts.router)
    app.include_router(scrape.router)
    return app


app = create_app()
