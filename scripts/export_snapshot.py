from __future__ import annotations

# Allow running scripts without requiring an editable install (`pip install -e .`).
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
sys.path.insert(0, str(SRC_PATH))

# `argparse` provides a stable CLI interface (no interactive prompts), so this can run from cron.
import argparse
import logging

from mendozabike.config.loader import load_config
from mendozabike.errors import UpstreamError
from mendozabike.render.feed import render_feed
from mendozabike.render.kml import render_kml
from mendozabike.repository.snapshot_cache import SnapshotCache
from mendozabike.utils.logging import configure_logging


logger = logging.getLogger("export_snapshot")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one refresh cycle and write the KML and JSON outputs to disk.")
    parser.add_argument("--config", default=None, help="Config JSON path.")
    parser.add_argument("--out-dir", default="data/out")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.logging)

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    cache = SnapshotCache.from_config(config)
    try:
        snapshot = cache.force_refresh()
    except UpstreamError as exc:
        logger.error("Could not fetch station status: %s", exc)
        return 1
    finally:
        cache.close()

    kml_path = out_dir / config.web.kml_filename
    kml_path.write_bytes(render_kml(snapshot, web=config.web))
    json_path = out_dir / "stations.json"
    json_path.write_text(render_feed(snapshot).model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    logger.info("Wrote %s and %s (%s stations)", kml_path, json_path, len(snapshot.stations))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
