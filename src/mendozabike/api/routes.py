from __future__ import annotations

# `quote` builds the Google Maps link that embeds our KML URL as a query parameter.
from urllib.parse import quote

# FastAPI primitives:
# - `APIRouter` groups endpoints so the app factory can include them cleanly.
# - `Depends` performs dependency injection per request (no global variables needed).
# - `Request` gives access to `app.state` where we store our service object.
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from mendozabike.api.schemas import (
    EndpointsOut,
    HealthOut,
    RefreshOut,
    ServiceInfoOut,
    StationsFeedOut,
    UsageOut,
)
# Dataflow: HTTP request -> route handler -> FeedService -> SnapshotCache -> renderer -> response.
from mendozabike.api.service import FeedService
from mendozabike.errors import UpstreamError
from mendozabike.render.kml import KML_MEDIA_TYPE


router = APIRouter()

STATIONS_PATH = "/api/stations"
REFRESH_PATH = "/refresh"


# Dependency provider: the service is built once in `create_app` and kept on `app.state`.
def get_service(request: Request) -> FeedService:
    return request.app.state.feed_service  # type: ignore[attr-defined]


class FeedUnavailable(Exception):
    def __init__(self, error: str, message: str) -> None:
        super().__init__(message)
        self.error = error
        self.message = message


# Registered in `create_app`. Map clients read `error` and `message` at the top level of the body.
async def feed_unavailable_handler(request: Request, exc: FeedUnavailable) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": exc.error, "message": exc.message})


def _upstream_failure(error: str, exc: UpstreamError) -> FeedUnavailable:
    # The cache has already kept its last good snapshot.
    return FeedUnavailable(error, str(exc))


def _public_cache_control(service: FeedService) -> str:
    # Mirror the freshness window so map clients do not poll faster than we refresh.
    return f"public, max-age={int(service.cache.ttl_seconds)}"


def _kml_path(service: FeedService) -> str:
    return f"/{service.config.web.kml_filename}"


@router.get("/", response_model=ServiceInfoOut)
def service_info(request: Request, service: FeedService = Depends(get_service)) -> ServiceInfoOut:
    kml_path = _kml_path(service)
    kml_url = str(request.base_url).rstrip("/") + kml_path
    last = service.last_snapshot()
    return ServiceInfoOut(
        message=f"{service.config.web.document_name}: KML y JSON en tiempo real",
        endpoints=EndpointsOut(kml=kml_path, stations=STATIONS_PATH, refresh=REFRESH_PATH),
        usage=UsageOut(
            google_maps=f"https://www.google.com/maps?q={quote(kml_url, safe='')}",
            description="Abrí el link de Google Maps o cargá la URL del KML en tu cliente de mapas.",
        ),
        last_update=last.fetched_at if last is not None else "never",
    )


@router.get("/health", response_model=HealthOut)
def health(service: FeedService = Depends(get_service)) -> HealthOut:
    return HealthOut(
        status="ok",
        version=service.config.app.version,
        snapshot=service.last_snapshot() is not None,
    )


@router.get(STATIONS_PATH, response_model=StationsFeedOut)
def stations_feed(response: Response, service: FeedService = Depends(get_service)) -> StationsFeedOut:
    try:
        payload = service.stations_feed()
    except UpstreamError as exc:
        raise _upstream_failure("Error obteniendo datos de estaciones", exc) from exc
    response.headers["Cache-Control"] = _public_cache_control(service)
    return payload


@router.post(REFRESH_PATH, response_model=RefreshOut)
def refresh(service: FeedService = Depends(get_service)) -> RefreshOut:
    try:
        snapshot = service.force_refresh()
    except UpstreamError as exc:
        raise _upstream_failure("Error actualizando cache", exc) from exc
    return RefreshOut(
        message="Cache actualizado exitosamente",
        stations=len(snapshot.stations),
        repair_points=len(snapshot.repair_points),
        bike_paths=len(snapshot.bike_paths),
        last_update=snapshot.fetched_at,
    )


# Not decorated: the KML path comes from config, so `create_app` attaches it.
def kml_document(service: FeedService = Depends(get_service)) -> Response:
    try:
        body = service.kml_document()
    except UpstreamError as exc:
        raise _upstream_failure("Error generando el archivo KML", exc) from exc
    return Response(
        content=body,
        media_type=KML_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'inline; filename="{service.config.web.kml_filename}"',
            "Cache-Control": _public_cache_control(service),
        },
    )
