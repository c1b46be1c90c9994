from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from mendozabike.config.models import (
    DEFAULT_EXCLUDED_STATION_NAMES,
    AppConfig,
    AppSettings,
    CacheSettings,
    FeedSettings,
    FilterSettings,
    LoggingSettings,
    StaticDataSettings,
    WebSettings,
)


_VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def load_dotenv_if_available(path: str = ".env") -> None:
    try:
        from dotenv import load_dotenv  # type: ignore
    except ModuleNotFoundError:
        return
    load_dotenv(path)


def _as_path(value: str, *, base_dir: Path) -> Path:
    candidate = Path(value)
    return candidate if candidate.is_absolute() else (base_dir / candidate)


def _env_positive_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_config(path: Optional[str | Path] = None, *, base_dir: Optional[Path] = None) -> AppConfig:
    """
    Load typed application config from JSON.

    - Path resolution is relative to `base_dir` (defaults to current working directory).
    - `.env` is loaded when python-dotenv is installed.
    - Feed URLs, cache TTL and log level can be overridden from the environment.
    """

    load_dotenv_if_available()

    config_path = Path(
        path
        or os.getenv("MENDOZABIKE_CONFIG_PATH", "config/default.json")
    ).resolve()
    base_dir = (base_dir or Path.cwd()).resolve()

    raw = json.loads(config_path.read_text(encoding="utf-8"))

    app_raw: Mapping[str, Any] = raw.get("app", {})
    app = AppSettings(
        name=str(app_raw.get("name", "MendozaBike")),
        version=str(app_raw.get("version", "0.1.0")),
    )

    feed_raw: Mapping[str, Any] = raw.get("feed", {})
    status_url = os.getenv("MENDOZABIKE_STATUS_URL") or feed_raw.get("status_url")
    info_url = os.getenv("MENDOZABIKE_INFO_URL") or feed_raw.get("info_url")
    if not status_url or not info_url:
        raise ValueError("Config missing required fields: feed.status_url and/or feed.info_url")
    feed = FeedSettings(
        status_url=str(status_url),
        info_url=str(info_url),
        timeout_s=float(feed_raw.get("timeout_s", 10.0)),
        max_retries=int(feed_raw.get("max_retries", 2)),
        backoff_factor=float(feed_raw.get("backoff_factor", 0.3)),
        user_agent=str(feed_raw.get("user_agent", "mendozabike/0.1.0")),
    )
    if feed.timeout_s <= 0:
        raise ValueError(f"feed.timeout_s must be > 0, got {feed.timeout_s}")

    static_raw: Mapping[str, Any] = raw.get("static_data", {})
    static_data = StaticDataSettings(
        bike_paths_path=_as_path(
            str(static_raw.get("bike_paths_path", "data/static/ciclovias.kml")), base_dir=base_dir
        ),
        repair_points_path=_as_path(
            str(static_raw.get("repair_points_path", "data/static/puntos_reparacion.kml")), base_dir=base_dir
        ),
    )

    cache_raw: Mapping[str, Any] = raw.get("cache", {})
    ttl_seconds = _env_positive_int("MENDOZABIKE_CACHE_TTL_SECONDS") or int(cache_raw.get("ttl_seconds", 300))
    if ttl_seconds <= 0:
        raise ValueError(f"cache.ttl_seconds must be > 0, got {ttl_seconds}")
    cache = CacheSettings(
        ttl_seconds=ttl_seconds,
        serve_stale_on_error=bool(cache_raw.get("serve_stale_on_error", False)),
    )

    filters_raw: Mapping[str, Any] = raw.get("filters", {})
    excluded = filters_raw.get("excluded_station_names")
    filters = FilterSettings(
        excluded_station_names=(
            DEFAULT_EXCLUDED_STATION_NAMES if excluded is None else tuple(str(x) for x in excluded)
        ),
    )

    logging_raw: Mapping[str, Any] = raw.get("logging", {})
    file_value = logging_raw.get("file")
    log_file = None if not file_value else _as_path(str(file_value), base_dir=base_dir)
    level = os.getenv("MENDOZABIKE_LOG_LEVEL") or str(logging_raw.get("level", "INFO"))
    if level.upper() not in _VALID_LOG_LEVELS:
        raise ValueError(f"Unsupported logging.level: {level}")
    logging_settings = LoggingSettings(
        level=level.upper(),
        format=str(logging_raw.get("format", "%(asctime)s %(levelname)s %(name)s - %(message)s")),
        file=log_file,
    )

    web_raw: Mapping[str, Any] = raw.get("web", {})
    defaults = WebSettings()
    web = WebSettings(
        kml_filename=str(web_raw.get("kml_filename", defaults.kml_filename)),
        document_name=str(web_raw.get("document_name", defaults.document_name)),
        document_description=str(web_raw.get("document_description", defaults.document_description)),
        timezone=str(web_raw.get("timezone", defaults.timezone)),
        cors_origins=[str(x) for x in web_raw.get("cors_origins", defaults.cors_origins)],
    )
    if not web.kml_filename.endswith(".kml"):
        raise ValueError(f"web.kml_filename must end with .kml, got {web.kml_filename}")

    return AppConfig(
        app=app,
        feed=feed,
        static_data=static_data,
        cache=cache,
        filters=filters,
        logging=logging_settings,
        web=web,
    )
