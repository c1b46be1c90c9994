from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional


AvailabilityStatus = Literal["many", "few", "empty"]


@dataclass(frozen=True)
class StationStatus:
    station_id: str
    num_bikes_available: int = 0
    num_docks_available: Optional[int] = None
    last_reported: Optional[int] = None


@dataclass(frozen=True)
class StationInfo:
    station_id: str
    name: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    capacity: Optional[int] = None


@dataclass(frozen=True)
class RepairPoint:
    name: str
    description: str
    lat: float
    lon: float


@dataclass(frozen=True)
class PathVertex:
    lat: float
    lon: float


@dataclass(frozen=True)
class BikePath:
    name: str
    department: str
    length_m: float
    coordinates: tuple[PathVertex, ...]


@dataclass(frozen=True)
class CanonicalStation:
    station_id: str
    name: str
    address: Optional[str]
    lat: Optional[float]
    lon: Optional[float]
    bikes_available: int
    docks_available: int
    total_docks: Optional[int]
    capacity: Optional[int]
    last_reported: Optional[datetime]
    status: AvailabilityStatus

    @property
    def occupancy_pct(self) -> Optional[int]:
        if not self.capacity:
            return None
        return round(self.bikes_available / self.capacity * 100)


@dataclass(frozen=True)
class Snapshot:
    """
    One consistent view of every source, as published by the refresh cache.

    Collections are tuples so a published snapshot cannot be edited in place.
    """

    stations: tuple[CanonicalStation, ...]
    repair_points: tuple[RepairPoint, ...]
    bike_paths: tuple[BikePath, ...]
    fetched_at: datetime
    info_available: bool = True
