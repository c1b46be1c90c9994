from __future__ import annotations

from mendozabike.api.schemas import (
    BikePathOut,
    PathVertexOut,
    RepairPointOut,
    StationOut,
    StationsFeedOut,
)
from mendozabike.schemas.core import BikePath, CanonicalStation, RepairPoint, Snapshot


def station_out(station: CanonicalStation) -> StationOut:
    # Only displayable stations reach a snapshot, so coordinates are present here.
    return StationOut(
        id=station.station_id,
        name=station.name,
        address=station.address,
        lat=station.lat,  # type: ignore[arg-type]
        lon=station.lon,  # type: ignore[arg-type]
        bikes_available=station.bikes_available,
        docks_available=station.docks_available,
        total_docks=station.total_docks,
        capacity=station.capacity,
        occupancy_pct=station.occupancy_pct,
        last_reported=station.last_reported,
        status=station.status,
    )


def repair_point_out(index: int, point: RepairPoint) -> RepairPointOut:
    return RepairPointOut(
        id=f"repair-{index}",
        name=point.name,
        description=point.description,
        lat=point.lat,
        lon=point.lon,
    )


def bike_path_out(index: int, path: BikePath) -> BikePathOut:
    return BikePathOut(
        id=f"path-{index}",
        name=path.name,
        department=path.department,
        length_m=path.length_m,
        coordinates=[PathVertexOut(lat=v.lat, lon=v.lon) for v in path.coordinates],
    )


def render_feed(snapshot: Snapshot) -> StationsFeedOut:
    """Shape a snapshot into the JSON payload consumed by the web map."""

    return StationsFeedOut(
        last_update=snapshot.fetched_at,
        total_stations=len(snapshot.stations),
        total_repair_points=len(snapshot.repair_points),
        total_bike_paths=len(snapshot.bike_paths),
        info_available=snapshot.info_available,
        stations=[station_out(s) for s in snapshot.stations],
        # Ids are 1-based positions in the source document.
        repair_points=[repair_point_out(i, p) for i, p in enumerate(snapshot.repair_points, start=1)],
        bike_paths=[bike_path_out(i, p) for i, p in enumerate(snapshot.bike_paths, start=1)],
    )
