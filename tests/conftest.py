"""
Pytest configuration and shared fixtures for Toolwise tests.
"""

import json
from typing import Dict, List, Optional, Union
from unittest.mock import AsyncMock

import pytest

from toolwise.catalog import CatalogStore
from toolwise.completion import CompletionProvider
from toolwise.discovery import DiscoveryPipeline
from toolwise.discovery_log import DiscoveryLog
from toolwise.errors import ExternalServiceUnavailable
from toolwise.intent import IntentMatcher
from toolwise.models import PageHints
from toolwise.recommendation import Orchestrator


class FakeProvider(CompletionProvider):
    """Completion provider replaying canned replies.

    Each item of *replies* is returned in turn; exceptions are raised
    instead.  The last item repeats once the list is exhausted.
    """

    def __init__(self, replies: List[Union[str, dict, Exception]], name: str = "fake"):
        self.name = name
        self.replies = list(replies)
        self.complete = AsyncMock(side_effect=self._next_reply)
        self.close = AsyncMock()

    def _next_reply(self, messages, **kwargs):
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    @property
    def calls(self) -> List[List[Dict[str, str]]]:
        """Message lists sent to complete(), oldest first."""
        return [call.args[0] for call in self.complete.call_args_list]


class FakeScraper:
    """Stand-in for PageScraper serving canned pages by URL."""

    def __init__(
        self,
        pages: Optional[Dict[str, PageHints]] = None,
        listing: Optional[List[PageHints]] = None,
    ):
        self.pages = dict(pages or {})
        self.listing = list(listing or [])
        self.analyze_url = AsyncMock(side_effect=self._page)
        self.fetch_listing = AsyncMock(side_effect=lambda listing_url: list(self.listing))
        self.close = AsyncMock()

    def _page(self, url: str) -> PageHints:
        if url not in self.pages:
            raise ExternalServiceUnavailable(f"could not fetch {url}")
        return self.pages[url]

    @property
    def requested(self) -> List[str]:
        return [call.args[0] for call in self.analyze_url.call_args_list]


@pytest.fixture
def catalog_path(tmp_path):
    return tmp_path / "catalog.json"


@pytest.fixture
def store(catalog_path):
    """Catalog store seeded from the packaged catalog."""
    s = CatalogStore(catalog_path)
    s.load()
    return s


@pytest.fixture
def matcher(store):
    return IntentMatcher(store)


@pytest.fixture
def orchestrator(store, matcher):
    return Orchestrator(store, matcher, providers=[])


@pytest.fixture
def discovery_log(tmp_path):
    return DiscoveryLog(tmp_path / "discovered.json")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_pipeline(store, discovery_log, sleeps):
    """Build a DiscoveryPipeline with fake collaborators and a recording sleep."""

    async def _sleep(seconds):
        sleeps.append(seconds)

    def _make(scraper=None, providers=None):
        return DiscoveryPipeline(
            store,
            discovery_log,
            scraper or FakeScraper(),
            providers or [],
            request_delay=2.0,
            bulk_delay=1.5,
            listing_url="https://directory.example/ai-tools/",
            sleep=_sleep,
        )

    return _make


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the real home directory and environment."""
    for var in (
        "GROQ_API_KEY",
        "GEMINI_API_KEY",
        "TOOLWISE_CATALOG_PATH",
        "TOOLWISE_DISCOVERY_LOG_PATH",
        "TOOLWISE_REQUEST_DELAY",
        "TOOLWISE_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    from toolwise.settings import reset_settings

    reset_settings()
    yield tmp_path
    reset_settings()
