"""
HTTP helpers.

Geocoding providers only ever issue JSON GETs, so this stays a single function.

Design goals:
- Deterministic defaults (timeout + User-Agent).
- Optional client-side throttling before the request leaves the process.
- Raise on non-2xx so providers can translate failures into `GeocodingFailed`.
"""

from __future__ import annotations

from typing import Any

import httpx

from biabook.core.rate_limit import TokenBucketRateLimiter

DEFAULT_USER_AGENT = "biabook/0.1.0 (+https://biabook.app)"


def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
    rate_limiter: TokenBucketRateLimiter | None = None,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    if rate_limiter is not None:
        rate_limiter.acquire()

    with httpx.Client(timeout=timeout_seconds) as client:
        resp = client.get(url, params=params, headers=request_headers)
        resp.raise_for_status()
        return resp.json()
