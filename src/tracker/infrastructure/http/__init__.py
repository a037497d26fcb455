from src.tracker.infrastructure.http.snapshot_fetcher import HttpSnapshotFetcher

__all__ = ["HttpSnapshotFetcher"]
