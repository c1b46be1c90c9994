from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable, Optional, Sequence, TypeVar

from mendozabike.config.models import DEFAULT_EXCLUDED_STATION_NAMES
from mendozabike.schemas.core import (
    AvailabilityStatus,
    BikePath,
    CanonicalStation,
    RepairPoint,
    Snapshot,
    StationInfo,
    StationStatus,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

MANY_BIKES_THRESHOLD = 5
SYNTHETIC_NAME_TEMPLATE = "Station {station_id}"


def first_present(*candidates: Optional[T], default: T) -> T:
    """Return the first candidate that is not None, else `default`."""

    for candidate in candidates:
        if candidate is not None:
            return candidate
    return default


def resolve_name(status: StationStatus, info: StationInfo) -> str:
    # info.name -> "Station {id}"
    return first_present(info.name, default=SYNTHETIC_NAME_TEMPLATE.format(station_id=status.station_id))


def resolve_docks_available(status: StationStatus, info: StationInfo, bikes: int) -> int:
    # max(0, capacity - bikes) -> status.num_docks_available -> 0
    if info.capacity is not None:
        return max(0, info.capacity - bikes)
    return first_present(status.num_docks_available, default=0)


def resolve_total_docks(status: StationStatus, info: StationInfo, bikes: int, docks: int) -> int:
    # capacity -> num_docks_available + num_bikes_available (missing counts as 0).
    # Bikes parked above capacity widen the total so docks + bikes == total still holds.
    if info.capacity is not None:
        return max(info.capacity, bikes + docks)
    return first_present(status.num_docks_available, default=0) + bikes


def resolve_coordinates(info: StationInfo) -> tuple[Optional[float], Optional[float]]:
    if info.lat is None or info.lon is None:
        return None, None
    # A 0,0 pair is how the feed encodes "not placed yet".
    if info.lat == 0 and info.lon == 0:
        return None, None
    return info.lat, info.lon


def correct_last_reported(last_reported: Optional[int], *, now: datetime) -> Optional[datetime]:
    """
    Convert Unix seconds to an aware UTC datetime.

    Some docks report with their clock one year ahead; a timestamp whose year is
    after `now`'s year is pulled back by exactly one year.
    """

    if last_reported is None:
        return None
    try:
        reported = datetime.fromtimestamp(int(last_reported), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    if reported.year > now.year:
        try:
            reported = reported.replace(year=reported.year - 1)
        except ValueError:
            # 29 Feb does not exist in the previous year.
            reported = reported.replace(year=reported.year - 1, day=28)
    return reported


def classify_availability(bikes_available: int) -> AvailabilityStatus:
    if bikes_available > MANY_BIKES_THRESHOLD:
        return "many"
    if bikes_available > 0:
        return "few"
    return "empty"


def normalize_station(status: StationStatus, info: StationInfo, *, now: datetime) -> CanonicalStation:
    bikes = first_present(status.num_bikes_available, default=0)
    docks = resolve_docks_available(status, info, bikes)
    lat, lon = resolve_coordinates(info)
    return CanonicalStation(
        station_id=status.station_id,
        name=resolve_name(status, info),
        address=info.address,
        lat=lat,
        lon=lon,
        bikes_available=bikes,
        docks_available=docks,
        total_docks=resolve_total_docks(status, info, bikes, docks),
        capacity=info.capacity,
        last_reported=correct_last_reported(status.last_reported, now=now),
        status=classify_availability(bikes),
    )


def _normalized_names(names: Iterable[str]) -> frozenset[str]:
    return frozenset(n.strip().casefold() for n in names if n and n.strip())


def is_displayable(station: CanonicalStation, excluded: frozenset[str]) -> bool:
    if station.lat is None or station.lon is None:
        return False
    return station.name.strip().casefold() not in excluded


def build_snapshot(
    status: Sequence[StationStatus],
    info: Optional[Sequence[StationInfo]],
    repair_points: Sequence[RepairPoint],
    bike_paths: Sequence[BikePath],
    *,
    now: Optional[datetime] = None,
    excluded_names: Iterable[str] = DEFAULT_EXCLUDED_STATION_NAMES,
) -> Snapshot:
    """
    Join status with information and package every source into one `Snapshot`.

    Pure: no network or file access. `info=None` means the information feed was
    unavailable, so every station falls back to synthesized names and no coordinates.
    """

    now = now or datetime.now(timezone.utc)
    info_by_id = {record.station_id: record for record in (info or ())}
    excluded = _normalized_names(excluded_names)

    stations: list[CanonicalStation] = []
    seen: set[str] = set()
    hidden = 0
    for record in status:
        if record.station_id in seen:
            continue
        seen.add(record.station_id)
        paired = info_by_id.get(record.station_id) or StationInfo(station_id=record.station_id)
        station = normalize_station(record, paired, now=now)
        if not is_displayable(station, excluded):
            hidden += 1
            continue
        stations.append(station)

    if hidden:
        logger.info("Hid %s stations without coordinates or on the exclusion list", hidden)

    return Snapshot(
        stations=tuple(stations),
        repair_points=tuple(repair_points),
        bike_paths=tuple(bike_paths),
        fetched_at=now,
        info_available=info is not None,
    )
