from __future__ import annotations

from typing import Optional


# Raised when the station status feed cannot be fetched or decoded.
# This is the only failure that aborts a refresh cycle.
class UpstreamError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


# The station information feed failed; stations lose names/coordinates/capacity.
class EnrichmentUnavailable(RuntimeError):
    pass


# A static KML document exists but cannot be read or parsed.
class StaticDataUnavailable(RuntimeError):
    pass


# A single feed or KML record failed validation; the record is dropped.
class MalformedRecord(ValueError):
    pass
