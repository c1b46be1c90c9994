from __future__ import annotations

# `json.dumps` is used only for safe, truncated debug output in error messages.
import json
# `logging` reports retries and failures without dumping whole payloads.
import logging
# Typing helpers keep our interfaces explicit while we still operate on JSON dicts.
from typing import Any, Mapping, Optional

# `requests` performs HTTP calls; we wrap it to centralize retries, timeouts, and error handling.
import requests
# `HTTPAdapter` lets us mount a retry policy onto a `requests.Session`.
from requests.adapters import HTTPAdapter
# `Retry` implements backoff for transient failures (rate limits, 5xx), without manual sleep loops.
from urllib3.util.retry import Retry

from mendozabike.errors import UpstreamError


logger = logging.getLogger(__name__)


# `FeedHTTPClient` is a small JSON-over-HTTP client shared by both GBFS endpoints.
class FeedHTTPClient:
    """
    Minimal JSON GET client for public feeds.

    - One `requests.Session` per instance (no globals, connection reuse).
    - Retries are handled via a requests adapter for transient failures.
    - Every failure mode surfaces as `UpstreamError`, so callers handle one type.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.3,
        user_agent: str = "mendozabike/0.1.0",
    ) -> None:
        # A finite timeout keeps a slow upstream from blocking a refresh cycle forever.
        self._timeout_s = timeout_s

        # A `Session` reuses connections (keep-alive) which is both faster and friendlier to the API.
        self._session = requests.Session()
        # A stable User-Agent helps the feed operator identify our traffic.
        self._session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

        retry = Retry(
            total=max_retries,
            connect=max_retries,
            read=max_retries,
            status=max_retries,
            backoff_factor=backoff_factor,
            # Retry only on status codes that are likely transient or rate-limit related.
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET",),
            respect_retry_after_header=True,
            # Do not raise inside urllib3; we want to surface a single `UpstreamError` with context.
            raise_on_status=False,
        )
        self._session.mount("https://", HTTPAdapter(max_retries=retry))
        self._session.mount("http://", HTTPAdapter(max_retries=retry))

    def get_json(self, url: str, *, params: Optional[Mapping[str, Any]] = None) -> Any:
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout_s)
        except requests.Timeout as exc:
            raise UpstreamError(f"Request timed out after {self._timeout_s}s url={url}", url=url) from exc
        except requests.RequestException as exc:
            # Connection refused, DNS failure, exhausted retries, etc.
            raise UpstreamError(f"Request failed url={url}: {exc}", url=url) from exc

        # Treat any non-2xx as an error; retries for transient codes already happened in the adapter.
        if not (200 <= resp.status_code < 300):
            raise UpstreamError(
                f"Upstream returned {resp.status_code} url={url} body={resp.text[:300]}",
                status_code=resp.status_code,
                url=url,
            )

        try:
            return resp.json()
        except ValueError as exc:
            # `requests` raises a `ValueError` subclass when the body is not JSON.
            raise UpstreamError(
                f"Upstream body is not valid JSON url={url} body={resp.text[:200]}",
                status_code=resp.status_code,
                url=url,
            ) from exc

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "FeedHTTPClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def describe_payload(payload: Any, *, limit: int = 200) -> str:
    # Compact, truncated rendering for error messages about unexpected shapes.
    try:
        return json.dumps(payload, ensure_ascii=False)[:limit]
    except (TypeError, ValueError):
        return repr(payload)[:limit]
