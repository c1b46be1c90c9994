from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
import time
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from mendozabike.config.models import AppConfig, DEFAULT_EXCLUDED_STATION_NAMES
from mendozabike.errors import EnrichmentUnavailable, StaticDataUnavailable, UpstreamError
from mendozabike.gis.kml import load_bike_paths, load_repair_points
from mendozabike.ingestion.gbfs_client import GBFSClient
from mendozabike.preprocessing.snapshot_builder import build_snapshot
from mendozabike.schemas.core import BikePath, RepairPoint, Snapshot, StationInfo, StationStatus


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SnapshotSources:
    """The four independent inputs of a refresh cycle."""

    fetch_status: Callable[[], Sequence[StationStatus]]
    fetch_info: Callable[[], Optional[Sequence[StationInfo]]]
    load_repair_points: Callable[[], Sequence[RepairPoint]]
    load_bike_paths: Callable[[], Sequence[BikePath]]
    close: Optional[Callable[[], None]] = None

    @staticmethod
    def from_config(config: AppConfig) -> "SnapshotSources":
        gbfs = GBFSClient.from_settings(config.feed)
        static = config.static_data
        return SnapshotSources(
            fetch_status=gbfs.fetch_status,
            fetch_info=gbfs.fetch_info,
            load_repair_points=lambda: load_repair_points(static.repair_points_path),
            load_bike_paths=lambda: load_bike_paths(static.bike_paths_path),
            close=gbfs.close,
        )


class SnapshotCache:
    """
    Holds the latest `Snapshot` and refreshes it when older than `ttl_seconds`.

    - At most one refresh cycle runs at a time; stale callers arriving during a
      cycle wait on the same future instead of hitting upstream again.
    - A failed cycle never replaces the published snapshot.
    - `clock` measures freshness (monotonic); `now_fn` stamps `fetched_at` (wall clock).
    """

    def __init__(
        self,
        sources: SnapshotSources,
        *,
        ttl_seconds: float = 300,
        excluded_names: Iterable[str] = DEFAULT_EXCLUDED_STATION_NAMES,
        serve_stale_on_error: bool = False,
        clock: Callable[[], float] = time.monotonic,
        now_fn: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._sources = sources
        self._ttl_s = float(ttl_seconds)
        self._excluded_names = tuple(excluded_names)
        self._serve_stale_on_error = serve_stale_on_error
        self._clock = clock
        self._now = now_fn

        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._refreshed_at: Optional[float] = None
        self._invalidated = False
        self._inflight: Optional[Future] = None

        # One worker: refresh cycles are serialized by construction.
        self._refresh_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot-refresh")
        self._fetch_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="snapshot-fetch")

    @classmethod
    def from_config(cls, config: AppConfig, sources: Optional[SnapshotSources] = None) -> "SnapshotCache":
        return cls(
            sources or SnapshotSources.from_config(config),
            ttl_seconds=config.cache.ttl_seconds,
            excluded_names=config.filters.excluded_station_names,
            serve_stale_on_error=config.cache.serve_stale_on_error,
        )

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_s

    @property
    def refresh_in_flight(self) -> bool:
        with self._lock:
            return self._inflight is not None

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        snapshot = self._snapshot
        return None if snapshot is None else snapshot.fetched_at

    def peek(self) -> Optional[Snapshot]:
        """Last published snapshot, fresh or not, without triggering I/O."""
        return self._snapshot

    def is_fresh(self) -> bool:
        with self._lock:
            return self._is_fresh_locked()

    def _is_fresh_locked(self) -> bool:
        if self._snapshot is None or self._refreshed_at is None or self._invalidated:
            return False
        return (self._clock() - self._refreshed_at) < self._ttl_s

    def get_snapshot(self) -> Snapshot:
        with self._lock:
            if self._is_fresh_locked():
                return self._snapshot  # type: ignore[return-value]
            future = self._inflight or self._start_refresh_locked()
            fallback = self._snapshot

        try:
            return future.result()
        except UpstreamError as exc:
            if self._serve_stale_on_error and fallback is not None:
                logger.warning("Refresh failed, serving snapshot from %s: %s", fallback.fetched_at.isoformat(), exc)
                return fallback
            raise

    def force_refresh(self) -> Snapshot:
        """Run exactly one new refresh cycle regardless of freshness."""

        while True:
            with self._lock:
                # The old snapshot stays as the last good copy, but is no longer served as fresh.
                self._invalidated = True
                if self._inflight is None:
                    future = self._start_refresh_locked()
                    break
                pending = self._inflight
            # A cycle that started before this call may have read stale sources; let it finish first.
            wait([pending])

        return future.result()

    def _start_refresh_locked(self) -> Future:
        future = self._refresh_pool.submit(self._refresh_cycle)
        self._inflight = future
        return future

    def _collect(self) -> Snapshot:
        status_f = self._fetch_pool.submit(self._sources.fetch_status)
        info_f = self._fetch_pool.submit(self._sources.fetch_info)
        repair_f = self._fetch_pool.submit(self._sources.load_repair_points)
        paths_f = self._fetch_pool.submit(self._sources.load_bike_paths)
        wait([status_f, info_f, repair_f, paths_f])

        # Status is the primary data: its failure fails the whole cycle.
        status = status_f.result()
        info = _settle(info_f, None, (EnrichmentUnavailable, UpstreamError), label="station information")
        repair_points = _settle(repair_f, [], (StaticDataUnavailable,), label="repair points")
        bike_paths = _settle(paths_f, [], (StaticDataUnavailable,), label="bike paths")

        now = self._now()
        previous = self._snapshot
        if previous is not None and now < previous.fetched_at:
            # Wall clock stepped backwards; keep fetched_at non-decreasing.
            now = previous.fetched_at

        return build_snapshot(
            status,
            info,
            repair_points,
            bike_paths,
            now=now,
            excluded_names=self._excluded_names,
        )

    def _refresh_cycle(self) -> Snapshot:
        started = self._clock()
        logger.info("Refreshing snapshot")
        try:
            snapshot = self._collect()
        except Exception as exc:
            with self._lock:
                self._inflight = None
            if isinstance(exc, UpstreamError):
                logger.error("Snapshot refresh failed: %s", exc)
            else:
                logger.exception("Snapshot refresh crashed")
            raise

        with self._lock:
            self._snapshot = snapshot
            self._refreshed_at = self._clock()
            self._invalidated = False
            self._inflight = None

        logger.info(
            "Snapshot ready in %.2fs: %s stations, %s repair points, %s bike paths",
            self._clock() - started,
            len(snapshot.stations),
            len(snapshot.repair_points),
            len(snapshot.bike_paths),
        )
        return snapshot

    def close(self) -> None:
        self._refresh_pool.shutdown(wait=True)
        self._fetch_pool.shutdown(wait=True)
        if self._sources.close is not None:
            self._sources.close()


def _settle(future: Future, default: T, absorbed: tuple[type[Exception], ...], *, label: str) -> T:
    # Enrichment sources degrade to `default` on their own failures.
    try:
        return future.result()
    except absorbed as exc:
        logger.warning("%s unavailable, continuing without it: %s", label.capitalize(), exc)
        return default
