"""Tests for the HTTP feed fetcher, using httpx's mock transport."""

import httpx
import pytest

from riadsync.errors import FetchError
from riadsync.modules.calendar_sync.fetcher import HttpFeedFetcher

ICS = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"


def make_fetcher(handler) -> HttpFeedFetcher:
    return HttpFeedFetcher(client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_fetch_returns_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=ICS, headers={"Content-Type": "text/calendar"})

    fetcher = make_fetcher(handler)
    assert fetcher.fetch("https://www.airbnb.com/calendar/ical/1.ics") == ICS
    assert seen == ["https://www.airbnb.com/calendar/ical/1.ics"]
    fetcher.close()


@pytest.mark.parametrize("status", [404, 500, 503])
def test_http_error_status_raises_fetch_error(status: int):
    fetcher = make_fetcher(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(FetchError) as exc_info:
        fetcher.fetch("https://example.com/cal.ics")

    assert exc_info.value.url == "https://example.com/cal.ics"
    assert str(status) in str(exc_info.value)


def test_network_error_raises_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError):
        make_fetcher(handler).fetch("https://example.com/cal.ics")


def test_default_client_sends_calendar_accept_header():
    fetcher = HttpFeedFetcher()
    try:
        assert "text/calendar" in fetcher._client.headers["Accept"]
    finally:
        fetcher.close()
