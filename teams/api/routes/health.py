from fastapi import APIRouter

from teams.core.config import get_settings
from teams.schemas.health import HealthResponse
from teams.services.health_service import HealthService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    service = HealthService(get_settings())
    return service.get_status()
