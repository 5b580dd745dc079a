"""Tests for the discovery pipeline."""

import pytest

from conftest import FakeProvider, FakeScraper
from toolwise.discovery import keyword_classify, load_seed_tools, slugify
from toolwise.discovery_log import DiscoveryLog
from toolwise.errors import CompletionTimeout
from toolwise.models import DiscoveryErrorKind, PageHints


def _page(url, title, description="An AI tool"):
    return PageHints(url=url, title=title, description=description)


def _site(url, title, description="An AI tool"):
    return FakeScraper({url: _page(url, title, description)})


def _writely_scraper():
    return _site("https://writely.example", "Writely - AI writer")


def _classification(tool_id, name, category="writing", **extra):
    data = {
        "isAITool": True,
        "id": tool_id,
        "name": name,
        "bestFor": f"{name} things",
        "category": category,
        "limits": "10 docs a month",
        "pricing": {"free": True, "premium": "$10/month"},
        "whySuitsYou": "It helps",
        "ease": 4,
        "url": f"https://{tool_id}.example",
        "acceptsPrompt": True,
    }
    data.update(extra)
    return data


class TestHelpers:

    @pytest.mark.parametrize("name,expected", [
        ("Leonardo AI", "leonardo_ai"),
        ("  Copy.ai  ", "copy_ai"),
        ("!!!", "unknown_tool"),
    ])
    def test_slugify(self, name, expected):
        assert slugify(name) == expected

    def test_seed_list(self):
        seeds = load_seed_tools()
        assert seeds
        assert all(s["url"].startswith("http") for s in seeds)
        urls = [s["url"] for s in seeds]
        assert len(urls) == len(set(urls))

    def test_keyword_classify(self):
        hints = PageHints(
            url="https://clipster.example",
            name="Clipster",
            title="Clipster - AI video generator",
            description="Turn long videos into short reels",
        )
        classified = keyword_classify(hints)
        assert classified.category == "video_creation"
        assert classified.id == "clipster"
        assert classified.is_ai_tool is True
        assert classified.pricing.free is True

    def test_keyword_classify_defaults(self):
        classified = keyword_classify(PageHints(url="https://zz.example", title="Zz | home"))
        assert classified.category == "coding_assistance"
        assert classified.name == "Zz"


class TestDiscoverByUrl:

    @pytest.mark.asyncio
    async def test_adds_tool(self, make_pipeline, store, discovery_log):
        scraper = _writely_scraper()
        provider = FakeProvider([_classification("writely", "Writely")])
        pipeline = make_pipeline(scraper, [provider])
        total = store.catalog.metadata.total_tools

        result = await pipeline.discover_by_url("https://writely.example")

        assert result.success is True
        assert result.category == "writing"
        assert result.tool.prompt_hint == "Describe what you want to create"
        assert store.find_tool_by_id("writely").category_key == "writing"
        assert store.catalog.metadata.total_tools == total + 1
        assert [r.tool_id for r in discovery_log.records] == ["writely"]
        assert discovery_log.state.total_discovered == 1

    @pytest.mark.asyncio
    async def test_same_url_twice_is_duplicate(self, make_pipeline, store, discovery_log):
        scraper = _writely_scraper()
        provider = FakeProvider([_classification("writely", "Writely")])
        pipeline = make_pipeline(scraper, [provider])

        await pipeline.discover_by_url("https://writely.example")
        total = store.catalog.metadata.total_tools
        second = await pipeline.discover_by_url("https://writely.example")

        assert second.success is False
        assert second.error == DiscoveryErrorKind.DUPLICATE_ENTITY
        assert store.catalog.metadata.total_tools == total
        assert len(discovery_log.records) == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_not_an_ai_tool(self, make_pipeline, store, discovery_log):
        scraper = _site("https://shoes.example", "Shoe Shop")
        provider = FakeProvider([{"isAITool": False}])
        pipeline = make_pipeline(scraper, [provider])
        total = store.catalog.metadata.total_tools

        result = await pipeline.discover_by_url("https://shoes.example")

        assert result.success is False
        assert result.error == DiscoveryErrorKind.NOT_AN_AI_TOOL
        assert store.catalog.metadata.total_tools == total
        assert discovery_log.records == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verdict", ["false", "no", None, 0])
    async def test_non_boolean_verdict_is_rejected(self, make_pipeline, store, discovery_log, verdict):
        scraper = _site("https://shoes.example", "Shoe Shop")
        provider = FakeProvider([_classification("shoeshop", "Shoe Shop", isAITool=verdict)])
        pipeline = make_pipeline(scraper, [provider])
        total = store.catalog.metadata.total_tools

        result = await pipeline.discover_by_url("https://shoes.example")

        assert result.success is False
        assert result.error == DiscoveryErrorKind.NOT_AN_AI_TOOL
        assert store.find_tool_by_id("shoeshop") is None
        assert store.catalog.metadata.total_tools == total
        assert discovery_log.records == []

    @pytest.mark.asyncio
    async def test_later_provider_can_accept_after_missing_verdict(self, make_pipeline, store):
        scraper = _writely_scraper()
        unclear = FakeProvider([_classification("writely", "Writely", isAITool="true")], name="first")
        clear = FakeProvider([_classification("writely", "Writely")], name="second")
        pipeline = make_pipeline(scraper, [unclear, clear])

        result = await pipeline.discover_by_url("https://writely.example")

        assert result.success is True
        assert store.find_tool_by_id("writely") is not None
        assert len(unclear.calls) == 1
        assert len(clear.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_category(self, make_pipeline, store):
        scraper = _site("https://pets.example", "PetBot")
        provider = FakeProvider([_classification("petbot", "PetBot", category="pets")])
        pipeline = make_pipeline(scraper, [provider])

        result = await pipeline.discover_by_url("https://pets.example")

        assert result.error == DiscoveryErrorKind.INVALID_CATEGORY
        assert "pets" not in store.catalog.categories

    @pytest.mark.asyncio
    async def test_classifier_returns_existing_id(self, make_pipeline, store):
        scraper = _site("https://j.example", "Jasper Clone")
        provider = FakeProvider([_classification("jasper", "Jasper Again")])
        pipeline = make_pipeline(scraper, [provider])

        result = await pipeline.discover_by_url("https://j.example")

        assert result.error == DiscoveryErrorKind.DUPLICATE_ENTITY

    @pytest.mark.asyncio
    async def test_unreachable_site(self, make_pipeline):
        result = await make_pipeline(FakeScraper()).discover_by_url("https://down.example")
        assert result.success is False
        assert result.error == DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_provider_failure_uses_keyword_classifier(self, make_pipeline, store):
        scraper = _site(
            "https://clipster.example",
            "Clipster - AI video generator",
            "Short reels from long videos",
        )
        provider = FakeProvider([CompletionTimeout("slow")])
        pipeline = make_pipeline(scraper, [provider])

        result = await pipeline.discover_by_url("https://clipster.example")

        assert result.success is True
        assert result.category == "video_creation"
        assert store.find_tool_by_id("clipster") is not None

    @pytest.mark.asyncio
    async def test_paid_without_premium_is_normalized(self, make_pipeline, store):
        scraper = _site("https://pricey.example", "Pricey")
        provider = FakeProvider([
            _classification("pricey", "Pricey", pricing={"free": False, "premium": None})
        ])
        result = await make_pipeline(scraper, [provider]).discover_by_url("https://pricey.example")
        assert result.success is True
        assert result.tool.pricing.premium


class TestDiscoverByName:

    @pytest.mark.asyncio
    async def test_known_name_short_circuits(self, make_pipeline):
        scraper = FakeScraper()
        result = await make_pipeline(scraper).discover_by_name("Looka")
        assert result.error == DiscoveryErrorKind.DUPLICATE_ENTITY
        assert scraper.requested == []

    @pytest.mark.asyncio
    async def test_tries_domains_in_order(self, make_pipeline, store):
        scraper = _site("https://newbie.ai", "Newbie - AI writing")
        result = await make_pipeline(scraper).discover_by_name("Newbie")
        assert result.success is True
        assert scraper.requested == ["https://newbie.com", "https://newbie.ai"]
        assert store.find_tool_by_id("newbie") is not None

    @pytest.mark.asyncio
    async def test_not_found_anywhere(self, make_pipeline):
        scraper = FakeScraper()
        result = await make_pipeline(scraper).discover_by_name("Ghost Tool")
        assert result.success is False
        assert result.error == DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE
        assert len(scraper.requested) == 4
        assert scraper.requested[0] == "https://ghosttool.com"


class TestBatches:

    @pytest.mark.asyncio
    async def test_full_scrape(self, make_pipeline, store, sleeps):
        listing = [
            PageHints(url="https://lovable.dev", name="Lovable", source="directory"),
            PageHints(
                url="https://writely.example", name="Writely",
                description="AI writer", source="directory",
            ),
            PageHints(url="https://shoes.example", name="Shoe Shop", source="directory"),
            PageHints(url="https://clipster.example", name="Clipster", source="directory"),
        ]
        scraper = FakeScraper(
            pages={"https://writely.example": _page("https://writely.example", "Writely", "")},
            listing=listing,
        )
        provider = FakeProvider([
            _classification("writely", "Writely"),
            {"isAITool": False},
            _classification("clipster", "Clipster", category="video_creation"),
        ])
        pipeline = make_pipeline(scraper, [provider])
        total = store.catalog.metadata.total_tools

        summary = await pipeline.run_full_scrape()

        assert summary.discovered == 4
        assert summary.added == 2
        assert summary.skipped == 2
        assert summary.errors == 0
        assert store.catalog.metadata.total_tools == total + 2
        assert sleeps == [2.0, 2.0]
        assert "https://lovable.dev" not in scraper.requested

    @pytest.mark.asyncio
    async def test_full_scrape_empty_listing(self, make_pipeline):
        summary = await make_pipeline(FakeScraper()).run_full_scrape()
        assert summary.discovered == 0
        assert summary.added == 0

    @pytest.mark.asyncio
    async def test_bulk_import(self, make_pipeline, store, sleeps):
        scraper = FakeScraper({
            "https://newbie.example": _page("https://newbie.example", "Welcome", "AI writing helper"),
            "https://other.example": _page("https://other.example", "Other", "AI video maker"),
        })
        entries = [
            {"url": "https://lovable.dev", "name": "Lovable"},
            {"url": "https://newbie.example", "name": "Newbie"},
            {"url": "https://missing.example", "name": "Missing"},
            {"url": "https://other.example", "name": "Other"},
        ]
        summary = await make_pipeline(scraper).bulk_import(entries)

        assert summary.discovered == 4
        assert summary.added == 2
        assert summary.skipped == 1
        assert summary.errors == 1
        assert store.find_tool_by_id("newbie").name == "Newbie"
        assert sleeps == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_bulk_import_second_run_skips_everything(self, make_pipeline):
        scraper = _site("https://newbie.example", "Newbie")
        entries = [{"url": "https://newbie.example", "name": "Newbie"}]
        pipeline = make_pipeline(scraper)
        await pipeline.bulk_import(entries)
        summary = await pipeline.bulk_import(entries)
        assert summary.added == 0
        assert summary.skipped == 1


class TestStatsAndLog:

    @pytest.mark.asyncio
    async def test_stats(self, make_pipeline, store):
        scraper = _site("https://newbie.example", "Newbie")
        pipeline = make_pipeline(scraper)
        await pipeline.discover_by_url("https://newbie.example")

        stats = pipeline.stats()
        assert stats.total_tools == store.catalog.metadata.total_tools
        assert stats.categories == len(store.catalog.categories)
        assert stats.total_discovered == 1
        assert stats.last_scrape is not None
        assert "totalTools" in stats.model_dump(by_alias=True)

    def test_log_survives_restart(self, tmp_path, store):
        path = tmp_path / "log.json"
        log = DiscoveryLog(path)
        log.append(store.find_tool_by_id("looka").tool, "design", "https://looka.com")
        again = DiscoveryLog(path)
        assert again.records[0].tool_id == "looka"
        assert again.state.total_discovered == 1

    def test_corrupt_log_resets(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text("{broken", encoding="utf-8")
        assert DiscoveryLog(path).records == []
