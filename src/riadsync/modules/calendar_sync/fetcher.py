"""Retrieval of raw iCal text from a feed URL."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from riadsync.config import section
from riadsync.errors import FetchError

logger = logging.getLogger(__name__)


class FeedFetcher(Protocol):
    def fetch(self, url: str) -> str:
        """Return the body at ``url`` or raise FetchError."""
        ...


class HttpFeedFetcher:
    """Plain HTTP GET. Retries are left to the next scheduled sync."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        cfg = section("sync")
        headers = {"Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1"}
        if cfg.get("user_agent"):
            headers["User-Agent"] = cfg["user_agent"]
        self._client = client or httpx.Client(
            timeout=cfg.get("http_timeout", 30),
            follow_redirects=True,
            headers=headers,
        )

    def fetch(self, url: str) -> str:
        try:
            resp = self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch iCal from %s: %s", url, exc)
            raise FetchError(url, f"Failed to fetch feed: {exc}") from exc
        return resp.text

    def close(self) -> None:
        self._client.close()
