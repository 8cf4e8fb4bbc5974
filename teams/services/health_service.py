from datetime import UTC, datetime

from teams.core.config import Settings
from teams.schemas.health import HealthResponse


class HealthService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_status(self) -> HealthResponse:
        return HealthResponse(
            status="ok",
            service=self.settings.app_name,
            version=self.settings.app_version,
            data_store=self.settings.team_data_store,
            timestamp=datetime.now(UTC),
        )
