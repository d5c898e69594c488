"""
Object Storage Gateway — outbound HTTP calls to the attachment bucket.

All calls to the hosted storage REST API go through this class. Services
never call ``requests`` directly.

  - Upsert uploads: ``POST {base}/storage/v1/object/{bucket}/{path}`` with
    ``x-upsert: true`` so re-uploading the same path overwrites the object.
  - Public locators: ``{base}/storage/v1/object/public/{bucket}/{path}``.
  - No retry: a failure is returned to the caller, which aborts the submission.

Testability: pass a fake ``session`` to ObjectStorageGateway() in tests
instead of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60


class StorageResult:
    """Structured return value from gateway calls.

    Attributes:
        ok:           True if the call succeeded (HTTP 2xx + no exception).
        status_code:  HTTP status code (None if network-level failure).
        error:        Human-readable error message or None.
        duration_ms:  Round-trip latency in milliseconds.
    """

    def __init__(self, ok: bool, status_code: int | None, error: str | None, duration_ms: int) -> None:
        self.ok = ok
        self.status_code = status_code
        self.error = error
        self.duration_ms = duration_ms


class ObjectStorageGateway:
    """Storage REST API gateway for one project (base URL + service key)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: int = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _object_url(self, bucket: str, path: str, *, public: bool = False) -> str:
        prefix = "object/public" if public else "object"
        return f"{self.base_url}/storage/v1/{prefix}/{quote(bucket)}/{quote(path)}"

    def public_url(self, bucket: str, path: str) -> str:
        return self._object_url(bucket, path, public=True)

    def upload_object(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str | None = None,
    ) -> StorageResult:
        """Upload (or overwrite) one object. Never raises for HTTP/network errors."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "x-upsert": "true",
            "Content-Type": content_type or "application/octet-stream",
        }
        url = self._object_url(bucket, path)
        start = time.perf_counter()
        try:
            resp = self.session.post(url, data=content, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.warning("Storage upload failed path=%s: %s", path, exc)
            return StorageResult(False, None, str(exc), duration_ms)

        duration_ms = int((time.perf_counter() - start) * 1000)
        if 200 <= resp.status_code < 300:
            logger.info("Stored object path=%s bytes=%d (%dms)", path, len(content), duration_ms)
            return StorageResult(True, resp.status_code, None, duration_ms)

        error = _error_message(resp)
        logger.warning("Storage upload rejected path=%s status=%s: %s", path, resp.status_code, error)
        return StorageResult(False, resp.status_code, error, duration_ms)


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error")
        if msg:
            return str(msg)
    return f"HTTP {resp.status_code}"
