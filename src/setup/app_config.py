import inject

from src.setup.tracker_config import TrackerSettings, get_tracker_settings
from src.tracker.domain.repositories import PushChannel, SnapshotRepository
from src.tracker.infrastructure.http.snapshot_fetcher import HttpSnapshotFetcher
from src.tracker.infrastructure.socketio.channel import SocketIOPushChannel


def build_snapshot_fetcher(settings: TrackerSettings) -> HttpSnapshotFetcher:
    return HttpSnapshotFetcher(
        settings.API_URL,
        tasks_path=settings.TASKS_PATH,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )


def build_push_channel(settings: TrackerSettings) -> SocketIOPushChannel:
    return SocketIOPushChannel(
        settings.API_URL,
        namespace=settings.NAMESPACE,
        transports=settings.TRANSPORTS,
        wait_timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )


def configure_di(settings: TrackerSettings | None = None) -> None:
    """Bind the transport adapters used by ``TaskTracker()``."""
    if settings is None:
        settings = get_tracker_settings()

    def _config(binder: inject.Binder) -> None:
        # Factories, so every tracker owns its own client and connection.
        binder.bind_to_provider(SnapshotRepository, lambda: build_snapshot_fetcher(settings))
        binder.bind_to_provider(PushChannel, lambda: build_push_channel(settings))

    inject.clear_and_configure(_config)
