from fastapi import APIRouter

from teams.api.routes.external_teams import router as external_teams_router
from teams.api.routes.health import router as health_router
from teams.api.routes.invitations import router as invitations_router
from teams.api.routes.join_requests import router as join_requests_router
from teams.api.routes.memberships import router as memberships_router
from teams.api.routes.teams import router as teams_router
from teams.api.routes.users import router as users_router

api_router = APIRouter()
v1_router = APIRouter(prefix="/v1")

teams_api_router = APIRouter(prefix="/teams")
teams_api_router.include_router(users_router)
teams_api_router.include_router(teams_router)
teams_api_router.include_router(memberships_router)
teams_api_router.include_router(join_requests_router)
teams_api_router.include_router(invitations_router)
teams_api_router.include_router(external_teams_router)

api_router.include_router(health_router)
api_router.include_router(teams_api_router)

# Versioned routes for long-term API evolution.
v1_router.include_router(teams_api_router)
api_router.include_router(v1_router)
