"""Admin dashboard endpoints."""

from fastapi import APIRouter

from tourney.api.deps import AdminUser, ServicesDep
from tourney.schemas import DashboardStatsResponse

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_stats(admin: AdminUser, services: ServicesDep):
    """User and tournament counts, prizes paid out and commission estimate."""
    stats = await services.tournaments.dashboard_stats()
    return DashboardStatsResponse.from_stats(stats)
