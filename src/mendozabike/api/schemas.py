from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # The web map front-end reads camelCase keys; Python code keeps snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StationOut(CamelModel):
    id: str
    name: str
    address: Optional[str] = None
    lat: float
    lon: float
    bikes_available: int
    docks_available: int
    total_docks: Optional[int] = None
    capacity: Optional[int] = None
    occupancy_pct: Optional[int] = None
    last_reported: Optional[datetime] = None
    status: Literal["many", "few", "empty"]


class RepairPointOut(CamelModel):
    id: str
    name: str
    description: str = ""
    lat: float
    lon: float
    status: str = "available"


class PathVertexOut(CamelModel):
    lat: float
    lon: float


class BikePathOut(CamelModel):
    id: str
    name: str
    department: str = ""
    length_m: float
    coordinates: list[PathVertexOut] = Field(default_factory=list)
    status: str = "active"


class StationsFeedOut(CamelModel):
    last_update: datetime
    total_stations: int
    total_repair_points: int
    total_bike_paths: int
    info_available: bool = True
    stations: list[StationOut] = Field(default_factory=list)
    repair_points: list[RepairPointOut] = Field(default_factory=list)
    bike_paths: list[BikePathOut] = Field(default_factory=list)


class RefreshOut(CamelModel):
    message: str
    stations: int
    repair_points: int
    bike_paths: int
    last_update: datetime


class EndpointsOut(CamelModel):
    kml: str
    stations: str
    refresh: str
    info: str = "/"


class UsageOut(CamelModel):
    google_maps: str
    description: str


class ServiceInfoOut(CamelModel):
    message: str
    endpoints: EndpointsOut
    usage: UsageOut
    # Serialized like every other timestamp; "never" until the first snapshot.
    last_update: Union[datetime, Literal["never"]]


class HealthOut(BaseModel):
    status: str
    version: str
    snapshot: bool
