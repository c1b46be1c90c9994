from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_EXCLUDED_STATION_NAMES: tuple[str, ...] = (
    "Estación de prueba",
    "Estacion de prueba",
    "Test Station",
    "Taller",
    "Depósito",
)


@dataclass(frozen=True)
class AppSettings:
    name: str = "MendozaBike"
    version: str = "0.1.0"


@dataclass(frozen=True)
class FeedSettings:
    status_url: str
    info_url: str
    timeout_s: float = 10.0
    max_retries: int = 2
    backoff_factor: float = 0.3
    user_agent: str = "mendozabike/0.1.0"


@dataclass(frozen=True)
class StaticDataSettings:
    bike_paths_path: Path
    repair_points_path: Path


@dataclass(frozen=True)
class CacheSettings:
    ttl_seconds: int = 300
    serve_stale_on_error: bool = False


@dataclass(frozen=True)
class FilterSettings:
    excluded_station_names: tuple[str, ...] = DEFAULT_EXCLUDED_STATION_NAMES


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str
    file: Optional[Path] = None


@dataclass(frozen=True)
class WebSettings:
    kml_filename: str = "mendozabike.kml"
    document_name: str = "Estaciones de Bicicletas - Mendoza"
    document_description: str = (
        "Estaciones de bicicletas públicas de Mendoza con disponibilidad en tiempo real"
    )
    timezone: str = "America/Argentina/Mendoza"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    feed: FeedSettings
    static_data: StaticDataSettings
    cache: CacheSettings
    filters: FilterSettings
    logging: LoggingSettings
    web: WebSettings
