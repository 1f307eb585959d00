"""
Douban HTTP collaborators.

Two ports are consumed by image discovery:
- `SubjectMetadataSource`: resolves a subject id to its metadata (poster URL)
- `RateLimitedFetcher`: GETs a page with its own delay/backoff policy

`DelayedHttpFetcher` and `DoubanSubjectClient` are the default implementations.
Automated tests for this module should never call the live Douban endpoints;
inject a fake `requests.Session` or a fake fetcher instead.
"""

from __future__ import annotations

import json
import logging
import math
import random
import re
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol
from urllib.parse import urlencode

import requests

from douban_artwork.config import DEFAULT_API_BASE_URL
from douban_artwork.models.images import DoubanSubjectId, SubjectMetadata

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.7",
    "user-agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "referer": "https://movie.douban.com/",
}
_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}
_CONNECT_TIMEOUT_SECONDS = 5.0


class DoubanClientError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body_snippet: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_snippet = body_snippet


class DoubanRequestError(DoubanClientError):
    """HTTP or transport failure after the fetcher gave up retrying."""


class RequestCancelled(DoubanClientError):
    """The caller's cancel event was set while a request was pending."""


class MetadataUnavailable(DoubanClientError):
    def __init__(self, subject_id: DoubanSubjectId, message: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.subject_id = subject_id


class FetchFailed(DoubanClientError):
    def __init__(self, url: str, message: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.url = url


class RateLimitedFetcher(Protocol):
    """
    Port for fetching raw page text.

    Implementations own delay, backoff and retries; callers never retry.
    Failures are raised as `DoubanClientError` subclasses.
    """

    def get(self, url: str, *, cancel_event: threading.Event | None = None) -> str: ...


class SubjectMetadataSource(Protocol):
    """Port resolving a Douban subject id to its metadata (caching is up to the implementation)."""

    def get_subject(
        self,
        subject_id: DoubanSubjectId,
        *,
        cancel_event: threading.Event | None = None,
    ) -> SubjectMetadata: ...


def _parse_charset(content_type: str | None) -> str | None:
    if not content_type:
        return None
    match = re.search(r"charset=([^\s;]+)", content_type, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).strip("\"'")


def _decode_bytes(data: bytes, content_type: str | None) -> str:
    charset = _parse_charset(content_type) or "utf-8"
    try:
        return data.decode(charset)
    except (LookupError, UnicodeDecodeError):
        return data.decode("utf-8", errors="replace")


def _backoff_seconds(attempt: int) -> float:
    base = min(20.0, 2**attempt)
    return base + random.uniform(0.0, 0.4)


class DelayedHttpFetcher:
    """
    `RateLimitedFetcher` backed by `requests`.

    Consecutive requests are spaced by a random delay between `min_delay_seconds`
    and `max_delay_seconds`; 429/5xx responses and connection errors are retried
    with exponential backoff up to `max_attempts` total attempts.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        min_delay_seconds: float = 1.0,
        max_delay_seconds: float = 3.0,
        max_attempts: int = 3,
        timeout_seconds: float = 20.0,
        headers: Mapping[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not (math.isfinite(min_delay_seconds) and math.isfinite(max_delay_seconds)):
            raise ValueError("Delay bounds must be finite.")
        if min_delay_seconds < 0 or max_delay_seconds < min_delay_seconds:
            raise ValueError("Delay bounds must satisfy 0 <= min_delay_seconds <= max_delay_seconds.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if not math.isfinite(timeout_seconds) or timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be a finite number > 0.")
        self._session = session or requests.Session()
        self._min_delay = min_delay_seconds
        self._max_delay = max_delay_seconds
        self._max_attempts = max_attempts
        self._timeout_seconds = timeout_seconds
        self._headers = {**_DEFAULT_HEADERS, **(headers or {})}
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last_request_at: float | None = None

    def _wait(self, seconds: float, cancel_event: threading.Event | None) -> None:
        if seconds <= 0:
            return
        if cancel_event is None:
            self._sleep(seconds)
        elif cancel_event.wait(seconds):
            raise RequestCancelled("Douban request cancelled while waiting.")

    def _wait_for_slot(self, cancel_event: threading.Event | None) -> None:
        delay = random.uniform(self._min_delay, self._max_delay)
        with self._lock:
            if self._last_request_at is not None:
                remaining = self._last_request_at + delay - self._clock()
                self._wait(remaining, cancel_event)
            self._last_request_at = self._clock()

    def get(self, url: str, *, cancel_event: threading.Event | None = None) -> str:
        for attempt in range(1, self._max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled(f"Douban request cancelled: {url}")
            self._wait_for_slot(cancel_event)

            try:
                resp = self._session.get(
                    url,
                    headers=self._headers,
                    timeout=(_CONNECT_TIMEOUT_SECONDS, self._timeout_seconds),
                )
            except requests.RequestException as exc:
                if attempt < self._max_attempts:
                    logger.warning("Douban request error (attempt %s/%s) %s: %s", attempt, self._max_attempts, url, exc)
                    self._wait(_backoff_seconds(attempt), cancel_event)
                    continue
                raise DoubanRequestError(f"Douban request failed: {exc}") from exc

            text = _decode_bytes(resp.content or b"", resp.headers.get("content-type"))
            if resp.status_code == 200:
                return text

            if resp.status_code in _TRANSIENT_STATUSES and attempt < self._max_attempts:
                logger.warning(
                    "Douban returned HTTP %s (attempt %s/%s) %s",
                    resp.status_code,
                    attempt,
                    self._max_attempts,
                    url,
                )
                self._wait(_backoff_seconds(attempt), cancel_event)
                continue

            raise DoubanRequestError(
                f"Douban request failed with HTTP {resp.status_code}.",
                status_code=resp.status_code,
                body_snippet=text[:400],
            )

        raise DoubanRequestError(f"Douban request failed for {url}.")


def _parse_optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_subject_payload(body: str, *, subject_id: DoubanSubjectId) -> SubjectMetadata:
    """Normalize a `movie/subject/{id}` JSON body; raises `MetadataUnavailable` on bad shapes."""

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MetadataUnavailable(
            subject_id,
            "Douban returned non-JSON subject response.",
            body_snippet=(body or "")[:400],
        ) from exc

    if not isinstance(payload, Mapping):
        raise MetadataUnavailable(subject_id, "Douban returned unexpected JSON shape (not an object).")

    if "code" in payload and "images" not in payload:
        raise MetadataUnavailable(
            subject_id,
            f"Douban subject lookup failed: {payload.get('msg') or payload.get('code')}",
            body_snippet=(body or "")[:400],
        )

    images = payload.get("images")
    large = _optional_str(images.get("large")) if isinstance(images, Mapping) else None

    return SubjectMetadata(
        subject_id=str(payload.get("id") or subject_id),
        large_poster_url=large,
        title=_optional_str(payload.get("title")),
        original_title=_optional_str(payload.get("original_title")),
        year=_parse_optional_int(payload.get("year")),
        raw=payload,
    )


class DoubanSubjectClient:
    """`SubjectMetadataSource` for the Douban v2 movie subject API."""

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        api_key: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._api_base_url = api_base_url.rstrip("/")
        self._api_key = api_key

    def subject_url(self, subject_id: DoubanSubjectId) -> str:
        url = f"{self._api_base_url}/movie/subject/{subject_id}"
        if self._api_key:
            url = f"{url}?{urlencode({'apikey': self._api_key})}"
        return url

    def get_subject(
        self,
        subject_id: DoubanSubjectId,
        *,
        cancel_event: threading.Event | None = None,
    ) -> SubjectMetadata:
        url = self.subject_url(subject_id)
        try:
            body = self._fetcher.get(url, cancel_event=cancel_event)
        except RequestCancelled:
            raise
        except DoubanClientError as exc:
            raise MetadataUnavailable(
                subject_id,
                f"Douban subject {subject_id} unavailable: {exc}",
                status_code=exc.status_code,
                body_snippet=exc.body_snippet,
            ) from exc
        return parse_subject_payload(body, subject_id=subject_id)
