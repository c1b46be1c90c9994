# Use postponed evaluation of annotations so type hints don't require importing types at runtime.
from __future__ import annotations

# Allow running scripts without requiring an editable install (`pip install -e .`).
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
sys.path.insert(0, str(SRC_PATH))

# We import `uvicorn` to run our FastAPI application as an ASGI server.
import uvicorn
import os

# We use a factory function so the FastAPI app can be created with a typed config (no global state).
from mendozabike.api.app import create_app
from mendozabike.config.loader import load_config


# Keep all side effects (config IO, app creation, server startup) in one place so the module is import-safe.
def main() -> None:
    config = load_config()
    app = create_app(config)

    # `PORT` is what most PaaS hosts inject; the prefixed variable wins when both are set.
    host = os.getenv("MENDOZABIKE_HOST", "0.0.0.0")
    port = int(os.getenv("MENDOZABIKE_PORT") or os.getenv("PORT") or "3000")
    proxy_headers = os.getenv("MENDOZABIKE_PROXY_HEADERS", "false").strip().lower() in {"1", "true", "yes", "on"}
    forwarded_allow_ips = os.getenv("MENDOZABIKE_FORWARDED_ALLOW_IPS", "127.0.0.1")

    print(f"KML disponible en: http://localhost:{port}/{config.web.kml_filename}")
    uvicorn.run(
        app,
        host=host,
        port=port,
        proxy_headers=proxy_headers,
        forwarded_allow_ips=forwarded_allow_ips,
    )


if __name__ == "__main__":
    main()
