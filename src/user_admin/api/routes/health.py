"""Health check endpoints."""

from fastapi import APIRouter

from user_admin.api.dependencies import AppSettings, UserRepo
from user_admin.api.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: AppSettings, user_repo: UserRepo) -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        users=await user_repo.count_users(),
    )
