"""Shared HTTP plumbing for the ArcGIS feature and places services.

One requests session, common headers, an optional global minimum interval
between requests and uniform conversion of transport/ArcGIS errors into
LoadFailure.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import requests

from domain.errors import LoadFailure
from settings import settings

logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()

DEFAULT_HEADERS = {
    "User-Agent": settings.HTTP_USER_AGENT,
    "Accept": "application/json",
}


def _throttle() -> None:
    """Enforce HTTP_MIN_INTERVAL between requests across all threads."""
    global _last_request_ts
    min_interval = settings.HTTP_MIN_INTERVAL
    if min_interval <= 0:
        return
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < min_interval:
            time.sleep(min_interval - delta)
        _last_request_ts = time.time()


def _with_token(params: Optional[dict[str, Any]]) -> dict[str, Any]:
    out = dict(params or {})
    if settings.ARCGIS_API_KEY and "token" not in out:
        out["token"] = settings.ARCGIS_API_KEY
    return out


def request_json(
    method: str,
    url: str,
    *,
    source: str,
    params: Optional[dict[str, Any]] = None,
    data: Optional[dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> dict[str, Any]:
    """Perform a blocking request and return the decoded JSON body.

    Raises LoadFailure on network errors, non-2xx statuses, bodies that are
    not JSON objects and ArcGIS ``{"error": ...}`` payloads (which the REST
    API returns with HTTP 200).
    """
    _throttle()
    if method.upper() == "POST":
        data = _with_token(data)
    else:
        params = _with_token(params)
    try:
        resp = _session.request(
            method,
            url,
            params=params,
            data=data,
            headers=DEFAULT_HEADERS,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            verify=settings.HTTP_VERIFY_TLS,
        )
    except requests.RequestException as exc:
        logger.warning("%s request to %s failed: %s", source, url, exc)
        raise LoadFailure(source, f"request failed: {exc}") from exc

    if resp.status_code >= 400:
        logger.warning("%s returned HTTP %s for %s", source, resp.status_code, url)
        raise LoadFailure(source, f"HTTP {resp.status_code}", status_code=resp.status_code)

    try:
        payload = resp.json()
    except ValueError as exc:
        raise LoadFailure(source, "response body is not JSON") from exc

    if not isinstance(payload, dict):
        raise LoadFailure(source, "unexpected response shape")

    error = payload.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else str(error)
        logger.warning("%s reported error %s: %s", source, code, message)
        raise LoadFailure(source, message or "service error", status_code=code)

    logger.debug("%s %s %s ok", source, method.upper(), url)
    return payload
