from __future__ import annotations

from typing import Optional

from mendozabike.api.schemas import StationsFeedOut
from mendozabike.config.models import AppConfig
from mendozabike.render.feed import render_feed
from mendozabike.render.kml import render_kml
from mendozabike.repository.snapshot_cache import SnapshotCache
from mendozabike.schemas.core import Snapshot


# `FeedService` is a thin application layer between HTTP routes and the snapshot cache.
# Routes stay focused on HTTP concerns (headers, status codes); the service owns the
# cache lifecycle and knows how to render a snapshot in each output format.
class FeedService:
    def __init__(self, config: AppConfig, cache: Optional[SnapshotCache] = None) -> None:
        self._config = config
        self._cache = cache or SnapshotCache.from_config(config)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    def snapshot(self) -> Snapshot:
        return self._cache.get_snapshot()

    def force_refresh(self) -> Snapshot:
        return self._cache.force_refresh()

    def last_snapshot(self) -> Optional[Snapshot]:
        return self._cache.peek()

    def kml_document(self) -> bytes:
        return render_kml(self.snapshot(), web=self._config.web)

    def stations_feed(self) -> StationsFeedOut:
        return render_feed(self.snapshot())

    def close(self) -> None:
        self._cache.close()
