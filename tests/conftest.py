from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
import threading
from typing import Callable, Optional

import pytest


def pytest_configure() -> None:
    """
    Keep a `src/` layout while allowing `pytest` to run without requiring an editable install.
    """

    project_root = Path(__file__).resolve().parents[1]
    src_path = project_root / "src"
    sys.path.insert(0, str(src_path))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSources:
    """Counts calls and lets each test decide how every source behaves."""

    def __init__(self) -> None:
        from mendozabike.schemas.core import BikePath, PathVertex, RepairPoint, StationInfo, StationStatus

        self.status = [
            StationStatus(station_id="5", num_bikes_available=3, num_docks_available=2, last_reported=1700000000),
            StationStatus(station_id="6", num_bikes_available=9, num_docks_available=1, last_reported=1700000000),
        ]
        self.info: Optional[list] = [
            StationInfo(station_id="5", name="Plaza", address="Av. San Martín 1000", lat=-32.9, lon=-68.8, capacity=5),
            StationInfo(station_id="6", name="Parque", lat=-32.88, lon=-68.86, capacity=10),
        ]
        self.repair_points = [RepairPoint(name="Taller Centro", description="Inflador", lat=-32.89, lon=-68.84)]
        self.bike_paths = [
            BikePath(
                name="Ciclovía Norte",
                department="Capital",
                length_m=120.0,
                coordinates=(PathVertex(lat=-32.89, lon=-68.84), PathVertex(lat=-32.88, lon=-68.84)),
            )
        ]
        self.status_error: Optional[Exception] = None
        self.info_error: Optional[Exception] = None
        self.static_error: Optional[Exception] = None
        self.status_gate: Optional[threading.Event] = None
        self.status_started = threading.Event()
        self.status_calls = 0
        self.info_calls = 0
        self._lock = threading.Lock()

    def fetch_status(self) -> list:
        with self._lock:
            self.status_calls += 1
        self.status_started.set()
        if self.status_gate is not None:
            self.status_gate.wait(timeout=5)
        if self.status_error is not None:
            raise self.status_error
        return list(self.status)

    def fetch_info(self) -> Optional[list]:
        with self._lock:
            self.info_calls += 1
        if self.info_error is not None:
            raise self.info_error
        return None if self.info is None else list(self.info)

    def load_repair_points(self) -> list:
        if self.static_error is not None:
            raise self.static_error
        return list(self.repair_points)

    def load_bike_paths(self) -> list:
        if self.static_error is not None:
            raise self.static_error
        return list(self.bike_paths)

    def as_sources(self):
        from mendozabike.repository.snapshot_cache import SnapshotSources

        return SnapshotSources(
            fetch_status=self.fetch_status,
            fetch_info=self.fetch_info,
            load_repair_points=self.load_repair_points,
            load_bike_paths=self.load_bike_paths,
        )


@pytest.fixture
def fake_sources() -> FakeSources:
    return FakeSources()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fixed_now() -> Callable[[], datetime]:
    return lambda: datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def app_config(tmp_path: Path):
    from mendozabike.config.models import (
        AppConfig,
        AppSettings,
        CacheSettings,
        FeedSettings,
        FilterSettings,
        LoggingSettings,
        StaticDataSettings,
        WebSettings,
    )

    return AppConfig(
        app=AppSettings(name="MendozaBike Test"),
        feed=FeedSettings(status_url="https://feed.test/status.json", info_url="https://feed.test/info.json"),
        static_data=StaticDataSettings(
            bike_paths_path=tmp_path / "ciclovias.kml",
            repair_points_path=tmp_path / "puntos.kml",
        ),
        cache=CacheSettings(ttl_seconds=300),
        filters=FilterSettings(),
        logging=LoggingSettings(level="INFO", format="%(message)s"),
        web=WebSettings(),
    )
