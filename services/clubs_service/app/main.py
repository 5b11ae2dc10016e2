"""FastAPI application for the Clubs Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from libs.db.session import dispose_engine
from services.clubs_service.routers import (
    budgets_router,
    clubs_router,
    es_tests_router,
    events_router,
    expenses_router,
    memberships_router,
    purchase_requests_router,
    roster_router,
    tests_router,
    tournaments_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the Clubs Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="Science Olympiad Clubs Service",
        version="0.1.0",
        description="Rosters, budgets, purchase requests and tests for Science Olympiad clubs.",
        lifespan=lifespan,
    )

    # Add rate limiter state to app
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "clubs"}

    # Clubs, teams and memberships
    app.include_router(clubs_router)
    app.include_router(memberships_router)

    # Roster
    app.include_router(events_router)
    app.include_router(roster_router)

    # Finance
    app.include_router(budgets_router)
    app.include_router(expenses_router)
    app.include_router(purchase_requests_router)

    # Tests and tournaments
    app.include_router(tests_router)
    app.include_router(es_tests_router)
    app.include_router(tournaments_router)

    return app


app = create_app()
