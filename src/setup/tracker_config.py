from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class TrackerSettings(BaseSettings):
    """Configuration for the task tracker client."""
    API_URL: str = "http://localhost:8000"
    NAMESPACE: str = "/tasks"
    TASKS_PATH: str = "/api/tasks"
    TRANSPORTS: list[str] = ["polling", "websocket"]
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    AUTO_RECONNECT: bool = True
    MAX_RECONNECT_ATTEMPTS: int = 10
    RECONNECT_BASE_DELAY_MS: int = 1000
    RECONNECT_MAX_DELAY_MS: int = 30000
    RECONNECT_JITTER_MS: int = 1000

    ENABLE_FALLBACK: bool = True
    POLL_BASE_INTERVAL_MS: int = 1000
    POLL_MAX_INTERVAL_MS: int = 30000
    POLL_MAX_ATTEMPT: int = 5

    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_tracker_settings() -> TrackerSettings:
    """Return a fresh tracker settings instance."""
    return TrackerSettings()
