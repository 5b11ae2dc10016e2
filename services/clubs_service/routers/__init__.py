"""Clubs service routers."""

from services.clubs_service.routers.budgets import router as budgets_router
from services.clubs_service.routers.clubs import router as clubs_router
from services.clubs_service.routers.events import router as events_router
from services.clubs_service.routers.expenses import router as expenses_router
from services.clubs_service.routers.memberships import router as memberships_router
from services.clubs_service.routers.purchase_requests import (
    router as purchase_requests_router,
)
from services.clubs_service.routers.roster import router as roster_router
from services.clubs_service.routers.tests import es_router as es_tests_router
from services.clubs_service.routers.tests import router as tests_router
from services.clubs_service.routers.tournaments import router as tournaments_router

__all__ = [
    "budgets_router",
    "clubs_router",
    "es_tests_router",
    "events_router",
    "expenses_router",
    "memberships_router",
    "purchase_requests_router",
    "roster_router",
    "tests_router",
    "tournaments_router",
]
