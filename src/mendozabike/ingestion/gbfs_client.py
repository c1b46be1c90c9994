from __future__ import annotations

# `logging` is used to record ingestion issues without hiding them behind silent failures.
import logging
# Typing helpers keep our parsing rules explicit while we still consume raw JSON dicts.
from typing import Any, Mapping, Optional

# Typed settings tell this client which endpoints to call and how patient to be.
from mendozabike.config.models import FeedSettings
from mendozabike.errors import EnrichmentUnavailable, MalformedRecord, UpstreamError
# `FeedHTTPClient` handles the session, retries, timeouts and HTTP status handling.
from mendozabike.ingestion.http_base import FeedHTTPClient, describe_payload
# Schemas define the normalized per-endpoint records the snapshot builder consumes.
from mendozabike.schemas.core import StationInfo, StationStatus


logger = logging.getLogger(__name__)


def _optional_int(value: Any, *, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise MalformedRecord(f"{field} must be numeric, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedRecord(f"{field} must be numeric, got {value!r}") from exc


def _optional_float(value: Any) -> Optional[float]:
    # Coordinates are enrichment; a garbled value just makes the station undisplayable.
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_stations(payload: Any, *, url: str) -> list[Any]:
    """
    Return `payload["data"]["stations"]` or raise `UpstreamError` for any other shape.
    """

    data = payload.get("data") if isinstance(payload, Mapping) else None
    stations = data.get("stations") if isinstance(data, Mapping) else None
    if not isinstance(stations, list):
        raise UpstreamError(f"Unexpected GBFS response shape url={url}: {describe_payload(payload)}", url=url)
    return stations


# `GBFSClient` wraps `FeedHTTPClient` with the two GBFS endpoints and their normalization rules.
# Status is the primary data (failures propagate); information is enrichment (failures degrade).
class GBFSClient:
    def __init__(self, *, http: FeedHTTPClient, settings: FeedSettings) -> None:
        self._http = http
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: FeedSettings) -> "GBFSClient":
        http = FeedHTTPClient(
            timeout_s=settings.timeout_s,
            max_retries=settings.max_retries,
            backoff_factor=settings.backoff_factor,
            user_agent=settings.user_agent,
        )
        return cls(http=http, settings=settings)

    def fetch_status(self) -> list[StationStatus]:
        """
        Fetch per-station bike/dock counts.

        Raises `UpstreamError` on any request, status or shape failure.
        """

        url = self._settings.status_url
        payload = self._http.get_json(url)
        raw_stations = extract_stations(payload, url=url)

        out: list[StationStatus] = []
        seen: set[str] = set()
        dropped = 0
        for item in raw_stations:
            try:
                record = self.parse_status(item)
            except MalformedRecord as exc:
                dropped += 1
                logger.debug("Dropping status record: %s", exc)
                continue
            # Station ids must be unique within a snapshot; keep the first occurrence.
            if record.station_id in seen:
                dropped += 1
                logger.debug("Dropping duplicate status record for station %s", record.station_id)
                continue
            seen.add(record.station_id)
            out.append(record)

        logger.info("Fetched status for %s stations (%s dropped)", len(out), dropped)
        return out

    def load_info(self) -> list[StationInfo]:
        """
        Fetch station metadata, raising `EnrichmentUnavailable` on failure.
        """

        url = self._settings.info_url
        try:
            payload = self._http.get_json(url)
            raw_stations = extract_stations(payload, url=url)
        except UpstreamError as exc:
            raise EnrichmentUnavailable(str(exc)) from exc

        out: list[StationInfo] = []
        dropped = 0
        for item in raw_stations:
            try:
                out.append(self.parse_info(item))
            except MalformedRecord as exc:
                dropped += 1
                logger.debug("Dropping information record: %s", exc)
        logger.info("Fetched information for %s stations (%s dropped)", len(out), dropped)
        return out

    def fetch_info(self) -> Optional[list[StationInfo]]:
        # Station names/coordinates are optional enrichment: log and continue without them.
        try:
            return self.load_info()
        except EnrichmentUnavailable as exc:
            logger.warning("Station information unavailable, continuing without it: %s", exc)
            return None

    def close(self) -> None:
        self._http.close()

    @staticmethod
    def parse_status(item: Any) -> StationStatus:
        if not isinstance(item, Mapping):
            raise MalformedRecord(f"Status record is not an object: {describe_payload(item)}")
        # A station id is required to join status with information.
        station_id = _optional_str(item.get("station_id"))
        if not station_id:
            raise MalformedRecord(f"Missing station_id in status record: {describe_payload(item)}")

        bikes = _optional_int(item.get("num_bikes_available"), field="num_bikes_available")
        docks = _optional_int(item.get("num_docks_available"), field="num_docks_available")
        last_reported = _optional_int(item.get("last_reported"), field="last_reported")

        return StationStatus(
            station_id=station_id,
            # Counts are non-negative by definition; clamp rather than drop a live station.
            num_bikes_available=max(bikes or 0, 0),
            num_docks_available=None if docks is None else max(docks, 0),
            last_reported=last_reported,
        )

    @staticmethod
    def parse_info(item: Any) -> StationInfo:
        if not isinstance(item, Mapping):
            raise MalformedRecord(f"Information record is not an object: {describe_payload(item)}")
        station_id = _optional_str(item.get("station_id"))
        if not station_id:
            raise MalformedRecord(f"Missing station_id in information record: {describe_payload(item)}")

        # Capacity is optional; keep None when absent or garbled to avoid fake zeros.
        try:
            capacity = _optional_int(item.get("capacity"), field="capacity")
        except MalformedRecord:
            capacity = None

        return StationInfo(
            station_id=station_id,
            name=_optional_str(item.get("name")),
            address=_optional_str(item.get("address")),
            lat=_optional_float(item.get("lat")),
            lon=_optional_float(item.get("lon")),
            capacity=None if capacity is None or capacity < 0 else capacity,
        )
