"""Tests for the balldontlie feed client: pagination, retry and failure mapping."""

from __future__ import annotations

import time
from typing import Any, Optional
from unittest.mock import Mock

import pytest
import requests

from nfl_sync_pipeline.errors import FeedUnavailable
from nfl_sync_pipeline.feed import (
    DEFAULT_API_DELAY,
    MAX_API_DELAY,
    FeedClient,
    RateLimiter,
    clamp_page_size,
)


def _response(status: int = 200, payload: Any = None, text: str = "") -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.text = text
    resp.reason = "OK" if status < 400 else "Error"
    resp.json.return_value = payload
    return resp


def _client(session: Mock, max_attempts: int = 3, sleep: Optional[Mock] = None) -> FeedClient:
    return FeedClient(
        "https://api.example.test/nfl/v1/",
        "test-key",
        session=session,
        max_attempts=max_attempts,
        backoff_multiplier=0.01,
        backoff_max=0.05,
        rate_limiter=RateLimiter(0.0),
        sleep=sleep or Mock(),
    )


class TestFetchPage:
    def test_first_page_has_no_cursor(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [{"id": 1}], "meta": {"next_cursor": 25}})

        page = _client(session).fetch_page("teams")

        assert page.records == [{"id": 1}]
        assert page.next_cursor == 25
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.example.test/nfl/v1/teams"
        assert "cursor" not in kwargs["params"]
        assert kwargs["params"]["per_page"] == 100
        assert kwargs["headers"]["Authorization"] == "test-key"

    def test_cursor_page_size_and_filters_are_sent(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [], "meta": {"next_cursor": None}})

        _client(session).fetch_page("games", cursor=50, page_size=25, params={"seasons[]": [2024]})

        params = session.get.call_args.kwargs["params"]
        assert params == {"seasons[]": [2024], "per_page": 25, "cursor": 50}

    def test_page_size_is_capped(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [], "meta": {}})

        _client(session).fetch_page("players", page_size=500)

        assert session.get.call_args.kwargs["params"]["per_page"] == 100

    def test_missing_meta_means_end_of_feed(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [{"id": 1}]})

        page = _client(session).fetch_page("teams")

        assert page.next_cursor is None

    def test_empty_string_cursor_means_end_of_feed(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [], "meta": {"next_cursor": ""}})

        assert _client(session).fetch_page("teams").next_cursor is None

    def test_empty_data_with_cursor_is_a_valid_page(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": [], "meta": {"next_cursor": 200}})

        page = _client(session).fetch_page("stats", cursor=100)

        assert page.records == []
        assert page.next_cursor == 200

    def test_unknown_resource_type(self) -> None:
        with pytest.raises(ValueError):
            _client(Mock()).fetch_page("injuries")


class TestRetry:
    def test_server_error_is_retried_with_same_cursor(self) -> None:
        session = Mock()
        session.get.side_effect = [
            _response(503, text="upstream unavailable"),
            _response(payload={"data": [{"id": 2}], "meta": {"next_cursor": None}}),
        ]
        sleep = Mock()

        page = _client(session, sleep=sleep).fetch_page("players", cursor=75)

        assert page.records == [{"id": 2}]
        assert session.get.call_count == 2
        cursors = [c.kwargs["params"]["cursor"] for c in session.get.call_args_list]
        assert cursors == [75, 75]
        assert sleep.call_count == 1

    def test_rate_limited_is_retried(self) -> None:
        session = Mock()
        session.get.side_effect = [
            _response(429, text="slow down"),
            _response(payload={"data": [], "meta": {}}),
        ]

        _client(session).fetch_page("teams")

        assert session.get.call_count == 2

    def test_timeout_is_retried(self) -> None:
        session = Mock()
        session.get.side_effect = [
            requests.exceptions.Timeout("read timed out"),
            _response(payload={"data": [{"id": 1}], "meta": {}}),
        ]

        page = _client(session).fetch_page("teams")

        assert page.records == [{"id": 1}]

    def test_exhausted_retries_raise_feed_unavailable(self) -> None:
        session = Mock()
        session.get.return_value = _response(502, text="bad gateway")

        with pytest.raises(FeedUnavailable) as exc_info:
            _client(session, max_attempts=3).fetch_page("stats", cursor=300)

        assert session.get.call_count == 3
        assert exc_info.value.status == 502
        assert exc_info.value.cursor == 300
        assert exc_info.value.resource_type == "stats"

    def test_connection_errors_exhausted(self) -> None:
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(FeedUnavailable) as exc_info:
            _client(session, max_attempts=2).fetch_page("teams")

        assert session.get.call_count == 2
        assert exc_info.value.status is None

    def test_truncated_body_is_retried_with_same_cursor(self) -> None:
        session = Mock()
        session.get.side_effect = [
            requests.exceptions.ChunkedEncodingError("connection broken mid-body"),
            _response(payload={"data": [{"id": 7}], "meta": {"next_cursor": None}}),
        ]

        page = _client(session).fetch_page("stats", cursor=400)

        assert page.records == [{"id": 7}]
        cursors = [c.kwargs["params"]["cursor"] for c in session.get.call_args_list]
        assert cursors == [400, 400]

    def test_any_request_exception_exhausted_raises_feed_unavailable(self) -> None:
        session = Mock()
        session.get.side_effect = requests.exceptions.ContentDecodingError("bad gzip")

        with pytest.raises(FeedUnavailable) as exc_info:
            _client(session, max_attempts=2).fetch_page("stats", cursor=400)

        assert session.get.call_count == 2
        assert exc_info.value.cursor == 400

    def test_client_error_is_not_retried(self) -> None:
        session = Mock()
        session.get.return_value = _response(401, text="Unauthorized")

        with pytest.raises(FeedUnavailable) as exc_info:
            _client(session).fetch_page("players")

        assert session.get.call_count == 1
        assert exc_info.value.status == 401
        assert "Unauthorized" in str(exc_info.value)


class TestMalformedResponses:
    def test_non_json_body(self) -> None:
        resp = _response(text="<html>")
        resp.json.side_effect = ValueError("Expecting value")
        session = Mock()
        session.get.return_value = resp

        with pytest.raises(FeedUnavailable, match="not JSON"):
            _client(session).fetch_page("teams")

    def test_data_must_be_a_list(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload={"data": {"id": 1}})

        with pytest.raises(FeedUnavailable):
            _client(session).fetch_page("teams")

    def test_payload_must_be_an_object(self) -> None:
        session = Mock()
        session.get.return_value = _response(payload=[{"id": 1}])

        with pytest.raises(FeedUnavailable):
            _client(session).fetch_page("teams")


class TestClampPageSize:
    def test_default_applied(self) -> None:
        assert 1 <= clamp_page_size(None) <= 100

    def test_bounds(self) -> None:
        assert clamp_page_size(0) == 1
        assert clamp_page_size(101) == 100
        assert clamp_page_size(40) == 40


class TestRateLimiter:
    """Test rate limiting functionality."""

    def test_rate_limiter_initialization(self) -> None:
        limiter = RateLimiter()
        assert limiter.base_delay == DEFAULT_API_DELAY

    def test_rate_limiter_clamps_delay(self) -> None:
        assert RateLimiter(base_delay=10.0).base_delay == MAX_API_DELAY
        assert RateLimiter(base_delay=-1.0).base_delay == 0.0

    def test_rate_limiter_basic_delay(self) -> None:
        limiter = RateLimiter(base_delay=0.1)

        start_time = time.time()
        limiter.wait_if_needed()
        limiter.wait_if_needed()
        elapsed = time.time() - start_time

        assert elapsed >= 0.09
