from __future__ import annotations

import json

import pytest

from mendozabike.config.loader import load_config


def _write_config(tmp_path, **overrides) -> str:
    cfg = {
        "app": {"name": "Test", "version": "9.9.9"},
        "feed": {"status_url": "https://json.status", "info_url": "https://json.info", "timeout_s": 5},
        "static_data": {"bike_paths_path": "data/static/ciclovias.kml", "repair_points_path": "puntos.kml"},
        "cache": {"ttl_seconds": 120},
        "filters": {"excluded_station_names": ["Taller"]},
        "logging": {"level": "INFO", "format": "%(message)s"},
        "web": {"kml_filename": "mapa.kml", "cors_origins": ["https://maps.example.org"]},
    }
    cfg.update(overrides)
    path = tmp_path / "config.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "MENDOZABIKE_STATUS_URL",
        "MENDOZABIKE_INFO_URL",
        "MENDOZABIKE_CACHE_TTL_SECONDS",
        "MENDOZABIKE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_loads_values_from_json(tmp_path) -> None:
    cfg = load_config(_write_config(tmp_path), base_dir=tmp_path)
    assert cfg.app.version == "9.9.9"
    assert cfg.feed.timeout_s == 5.0
    assert cfg.cache.ttl_seconds == 120
    assert cfg.cache.serve_stale_on_error is False
    assert cfg.filters.excluded_station_names == ("Taller",)
    assert cfg.web.kml_filename == "mapa.kml"
    assert cfg.web.cors_origins == ["https://maps.example.org"]
    assert cfg.web.timezone == "America/Argentina/Mendoza"


def test_relative_paths_resolve_against_base_dir(tmp_path) -> None:
    cfg = load_config(_write_config(tmp_path), base_dir=tmp_path)
    assert cfg.static_data.bike_paths_path == tmp_path.resolve() / "data/static/ciclovias.kml"
    assert cfg.static_data.repair_points_path == tmp_path.resolve() / "puntos.kml"


def test_env_overrides_feed_urls(monkeypatch, tmp_path) -> None:
    path = _write_config(tmp_path)
    monkeypatch.setenv("MENDOZABIKE_STATUS_URL", "https://env.status")
    monkeypatch.setenv("MENDOZABIKE_INFO_URL", "https://env.info")

    cfg = load_config(path, base_dir=tmp_path)
    assert cfg.feed.status_url == "https://env.status"
    assert cfg.feed.info_url == "https://env.info"


def test_env_overrides_ttl(monkeypatch, tmp_path) -> None:
    path = _write_config(tmp_path)
    monkeypatch.setenv("MENDOZABIKE_CACHE_TTL_SECONDS", "60")

    cfg = load_config(path, base_dir=tmp_path)
    assert cfg.cache.ttl_seconds == 60


@pytest.mark.parametrize("raw", ["soon", "0", "-5", ""])
def test_invalid_ttl_does_not_override(monkeypatch, tmp_path, raw: str) -> None:
    path = _write_config(tmp_path)
    monkeypatch.setenv("MENDOZABIKE_CACHE_TTL_SECONDS", raw)

    cfg = load_config(path, base_dir=tmp_path)
    assert cfg.cache.ttl_seconds == 120


def test_missing_feed_url_is_rejected(tmp_path) -> None:
    path = _write_config(tmp_path, feed={"status_url": "https://json.status"})
    with pytest.raises(ValueError, match="info_url"):
        load_config(path, base_dir=tmp_path)


def test_non_positive_ttl_in_file_is_rejected(tmp_path) -> None:
    path = _write_config(tmp_path, cache={"ttl_seconds": 0})
    with pytest.raises(ValueError):
        load_config(path, base_dir=tmp_path)


def test_kml_filename_must_end_with_kml(tmp_path) -> None:
    path = _write_config(tmp_path, web={"kml_filename": "mapa.xml"})
    with pytest.raises(ValueError):
        load_config(path, base_dir=tmp_path)


def test_env_log_level_must_be_valid(monkeypatch, tmp_path) -> None:
    path = _write_config(tmp_path)
    monkeypatch.setenv("MENDOZABIKE_LOG_LEVEL", "debug")
    assert load_config(path, base_dir=tmp_path).logging.level == "DEBUG"

    monkeypatch.setenv("MENDOZABIKE_LOG_LEVEL", "chatty")
    with pytest.raises(ValueError):
        load_config(path, base_dir=tmp_path)
