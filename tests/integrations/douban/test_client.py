from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from douban_artwork.integrations.douban.client import (
    DelayedHttpFetcher,
    DoubanRequestError,
    DoubanSubjectClient,
    MetadataUnavailable,
    RequestCancelled,
    parse_subject_payload,
)


def _read_fixture(name: str) -> str:
    base = Path(__file__).resolve().parents[2] / "fixtures" / "douban"
    return (base / name).read_text(encoding="utf-8")


class _FakeResponse:
    def __init__(self, status_code: int, text: str = "", *, content_type: str = "text/html; charset=utf-8") -> None:
        self.status_code = status_code
        self.content = text.encode("utf-8")
        self.headers = {"content-type": content_type}


class _FakeSession:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, dict]] = []

    def get(self, url: str, **kwargs):  # noqa: ANN003
        self.calls.append((url, kwargs))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeFetcher:
    def __init__(self, *, body: str = "", error: Exception | None = None) -> None:
        self._body = body
        self._error = error
        self.urls: list[str] = []

    def get(self, url: str, *, cancel_event: threading.Event | None = None) -> str:
        self.urls.append(url)
        if self._error is not None:
            raise self._error
        return self._body


def _fetcher(session: _FakeSession, **kwargs) -> tuple[DelayedHttpFetcher, list[float]]:  # noqa: ANN003
    sleeps: list[float] = []
    fetcher = DelayedHttpFetcher(
        session=session,
        min_delay_seconds=kwargs.pop("min_delay_seconds", 0.0),
        max_delay_seconds=kwargs.pop("max_delay_seconds", 0.0),
        sleep=sleeps.append,
        **kwargs,
    )
    return fetcher, sleeps


def test_fetcher_returns_body_on_200() -> None:
    session = _FakeSession([_FakeResponse(200, "<html>ok</html>")])
    fetcher, sleeps = _fetcher(session)

    assert fetcher.get("https://movie.douban.com/subject/1/photos") == "<html>ok</html>"
    url, kwargs = session.calls[0]
    assert url == "https://movie.douban.com/subject/1/photos"
    assert "user-agent" in kwargs["headers"]
    assert sleeps == []


def test_fetcher_decodes_declared_charset() -> None:
    response = _FakeResponse(200)
    response.content = "豆瓣".encode("gb18030")
    response.headers = {"content-type": "text/html; charset=gb18030"}
    fetcher, _ = _fetcher(_FakeSession([response]))

    assert fetcher.get("https://movie.douban.com/") == "豆瓣"


@patch("douban_artwork.integrations.douban.client.random.uniform", return_value=0.0)
def test_fetcher_retries_transient_statuses(_uniform: MagicMock) -> None:
    session = _FakeSession([_FakeResponse(503, "busy"), _FakeResponse(429, "slow down"), _FakeResponse(200, "ok")])
    fetcher, sleeps = _fetcher(session, max_attempts=3)

    assert fetcher.get("https://movie.douban.com/") == "ok"
    assert len(session.calls) == 3
    assert sleeps == [2.0, 4.0]


def test_fetcher_retries_connection_errors_then_gives_up() -> None:
    session = _FakeSession([requests.ConnectionError("reset"), requests.ConnectionError("reset")])
    fetcher, _ = _fetcher(session, max_attempts=2)

    with pytest.raises(DoubanRequestError, match="reset"):
        fetcher.get("https://movie.douban.com/")
    assert len(session.calls) == 2


def test_fetcher_does_not_retry_client_errors() -> None:
    session = _FakeSession([_FakeResponse(404, "not found")])
    fetcher, sleeps = _fetcher(session, max_attempts=3)

    with pytest.raises(DoubanRequestError) as excinfo:
        fetcher.get("https://movie.douban.com/")
    assert excinfo.value.status_code == 404
    assert excinfo.value.body_snippet == "not found"
    assert len(session.calls) == 1
    assert sleeps == []


def test_fetcher_gives_up_after_max_attempts_on_transient_status() -> None:
    session = _FakeSession([_FakeResponse(502, "bad gateway"), _FakeResponse(502, "bad gateway")])
    fetcher, _ = _fetcher(session, max_attempts=2)

    with pytest.raises(DoubanRequestError) as excinfo:
        fetcher.get("https://movie.douban.com/")
    assert excinfo.value.status_code == 502


def test_fetcher_spaces_consecutive_requests() -> None:
    session = _FakeSession([_FakeResponse(200, "a"), _FakeResponse(200, "b")])
    clock = iter([100.0, 100.5, 101.0])
    fetcher, sleeps = _fetcher(
        session,
        min_delay_seconds=2.0,
        max_delay_seconds=2.0,
        clock=lambda: next(clock),
    )

    fetcher.get("https://movie.douban.com/a")
    fetcher.get("https://movie.douban.com/b")
    assert sleeps == [1.5]


def test_fetcher_honors_cancel_event() -> None:
    session = _FakeSession([_FakeResponse(200, "ok")])
    fetcher, _ = _fetcher(session)
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(RequestCancelled):
        fetcher.get("https://movie.douban.com/", cancel_event=cancel_event)
    assert session.calls == []


class _EventSetWhileWaiting:
    """Cancel event that is clear until the fetcher starts waiting on it."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    def is_set(self) -> bool:
        return False

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        return True


def test_fetcher_cancel_interrupts_request_spacing() -> None:
    session = _FakeSession([_FakeResponse(200, "a"), _FakeResponse(200, "b")])
    fetcher, sleeps = _fetcher(
        session,
        min_delay_seconds=2.0,
        max_delay_seconds=2.0,
        clock=lambda: 100.0,
    )
    fetcher.get("https://movie.douban.com/a")

    cancel_event = _EventSetWhileWaiting()
    with pytest.raises(RequestCancelled):
        fetcher.get("https://movie.douban.com/b", cancel_event=cancel_event)
    assert cancel_event.waits == [2.0]
    assert [url for url, _ in session.calls] == ["https://movie.douban.com/a"]
    assert sleeps == []


@patch("douban_artwork.integrations.douban.client.random.uniform", return_value=0.0)
def test_fetcher_cancel_interrupts_retry_backoff(_uniform: MagicMock) -> None:
    session = _FakeSession([_FakeResponse(503, "busy"), _FakeResponse(200, "ok")])
    fetcher, sleeps = _fetcher(session, max_attempts=3)

    cancel_event = _EventSetWhileWaiting()
    with pytest.raises(RequestCancelled):
        fetcher.get("https://movie.douban.com/", cancel_event=cancel_event)
    assert cancel_event.waits == [2.0]
    assert len(session.calls) == 1
    assert sleeps == []


def test_fetcher_cancel_from_another_thread() -> None:
    session = _FakeSession([_FakeResponse(200, "a"), _FakeResponse(200, "b")])
    fetcher, _ = _fetcher(session, min_delay_seconds=30.0, max_delay_seconds=30.0)
    fetcher.get("https://movie.douban.com/a")

    cancel_event = threading.Event()
    timer = threading.Timer(0.05, cancel_event.set)
    timer.start()
    try:
        with pytest.raises(RequestCancelled):
            fetcher.get("https://movie.douban.com/b", cancel_event=cancel_event)
    finally:
        timer.cancel()
    assert len(session.calls) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_delay_seconds": 3.0, "max_delay_seconds": 1.0},
        {"min_delay_seconds": float("nan")},
        {"max_delay_seconds": float("inf")},
        {"max_attempts": 0},
        {"timeout_seconds": 0},
        {"timeout_seconds": -1.0},
        {"timeout_seconds": float("nan")},
    ],
)
def test_fetcher_rejects_invalid_settings(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        DelayedHttpFetcher(session=_FakeSession([]), **kwargs)


def test_parse_subject_payload() -> None:
    subject = parse_subject_payload(_read_fixture("subject_1292052.json"), subject_id="1292052")

    assert subject.subject_id == "1292052"
    assert subject.large_poster_url == "https://img3.doubanio.com/view/photo/l_ratio_poster/public/p480747492.jpg"
    assert subject.title == "肖申克的救赎"
    assert subject.original_title == "The Shawshank Redemption"
    assert subject.year == 1994


def test_parse_subject_payload_without_images() -> None:
    subject = parse_subject_payload('{"id": "1", "title": "x"}', subject_id="1")
    assert subject.large_poster_url is None


@pytest.mark.parametrize(
    "body",
    [
        "<html>not json</html>",
        "[1, 2, 3]",
        '{"msg": "movie_not_found", "code": 5000, "request": "GET /v2/movie/subject/0"}',
    ],
)
def test_parse_subject_payload_rejects_bad_bodies(body: str) -> None:
    with pytest.raises(MetadataUnavailable) as excinfo:
        parse_subject_payload(body, subject_id="0")
    assert excinfo.value.subject_id == "0"


def test_subject_client_builds_url_with_api_key() -> None:
    fetcher = _FakeFetcher(body=_read_fixture("subject_1292052.json"))
    client = DoubanSubjectClient(fetcher, api_base_url="https://api.douban.com/v2/", api_key="abc")

    subject = client.get_subject("1292052")
    assert fetcher.urls == ["https://api.douban.com/v2/movie/subject/1292052?apikey=abc"]
    assert subject.large_poster_url.endswith("p480747492.jpg")


def test_subject_client_without_api_key() -> None:
    client = DoubanSubjectClient(_FakeFetcher())
    assert client.subject_url("1292052") == "https://api.douban.com/v2/movie/subject/1292052"


def test_subject_client_wraps_fetch_errors() -> None:
    cause = DoubanRequestError("Douban request failed with HTTP 404.", status_code=404)
    client = DoubanSubjectClient(_FakeFetcher(error=cause))

    with pytest.raises(MetadataUnavailable) as excinfo:
        client.get_subject("1292052")
    assert excinfo.value.status_code == 404
    assert excinfo.value.__cause__ is cause


def test_subject_client_passes_cancellation_through() -> None:
    client = DoubanSubjectClient(_FakeFetcher(error=RequestCancelled("cancelled")))
    with pytest.raises(RequestCancelled):
        client.get_subject("1292052")
