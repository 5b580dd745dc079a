"""Tests for the recommendation fallback chain."""

import pytest

from conftest import FakeProvider
from toolwise.errors import CompletionTimeout, RateLimited
from toolwise.models import Budget
from toolwise.recommendation import (
    DEFAULT_TOOL_IDS,
    AICompletionStrategy,
    CategoryKeywordStrategy,
    Orchestrator,
    RecommendationRequest,
    basic_prompt,
    coerce_budget,
)


AVATAR_QUERY = "I need an avatar video with a talking head"


def _free_everywhere(result):
    return all(t.tool.pricing.free for t in result.tools)


class TestBudget:

    @pytest.mark.parametrize("raw,expected", [
        ("free", Budget.FREE),
        ("PREMIUM", Budget.PREMIUM),
        ("paid", Budget.PREMIUM),
        (None, Budget.FREE),
        ("whatever", Budget.FREE),
        (Budget.PREMIUM, Budget.PREMIUM),
    ])
    def test_coerce_budget(self, raw, expected):
        assert coerce_budget(raw) == expected


class TestChainWithoutProviders:

    @pytest.mark.asyncio
    async def test_caller_category_wins(self, orchestrator):
        result = await orchestrator.get_recommendations("anything", "free", "video_creation")
        assert result.source == "ai_category"
        assert result.category == "video_creation"
        assert 0 < len(result.tools) <= 3
        assert _free_everywhere(result)

    @pytest.mark.asyncio
    async def test_unknown_category_ignored(self, orchestrator):
        result = await orchestrator.get_recommendations(
            "I need a logo for my startup", "free", "not_a_category"
        )
        assert result.source == "intent_match"
        assert result.category == "design"

    @pytest.mark.asyncio
    async def test_logo_scenario(self, orchestrator):
        result = await orchestrator.get_recommendations("I need a logo for my startup", "free")
        assert result.success is True
        assert result.category == "design"
        assert result.tools[0].id == "looka"
        assert len(result.tools) == 3

    @pytest.mark.asyncio
    async def test_free_budget_drops_paid_priority(self, orchestrator):
        result = await orchestrator.get_recommendations(AVATAR_QUERY, "free")
        ids = [t.id for t in result.tools]
        assert "synthesia" not in ids
        assert "d-id" not in ids
        assert _free_everywhere(result)

    @pytest.mark.asyncio
    async def test_premium_keeps_paid_priority(self, orchestrator):
        result = await orchestrator.get_recommendations(AVATAR_QUERY, "premium")
        assert [t.id for t in result.tools] == ["heygen", "synthesia", "d-id"]

    @pytest.mark.asyncio
    async def test_nothing_matches_uses_defaults(self, orchestrator):
        result = await orchestrator.get_recommendations("zzzz qqqq", "free")
        assert result.source == "default"
        assert result.category == "general"
        assert [t.id for t in result.tools] == list(DEFAULT_TOOL_IDS)

    @pytest.mark.asyncio
    async def test_follow_ups_attached(self, orchestrator):
        result = await orchestrator.get_recommendations("I need a logo for my startup", "free")
        design_texts = {f.text for f in orchestrator.matcher.table.follow_ups["design"]}
        assert result.follow_ups
        assert {f.text for f in result.follow_ups} <= design_texts

    @pytest.mark.asyncio
    async def test_payload_shape(self, orchestrator):
        payload = (await orchestrator.get_recommendations("make slides", "free")).to_payload()
        assert set(payload) == {"success", "source", "category", "reasoning", "tools", "followUps"}
        assert payload["tools"][0]["categoryKey"] == payload["category"]


class TestChainWithProviders:

    @pytest.mark.asyncio
    async def test_ai_pick_is_budget_filtered(self, store, matcher):
        provider = FakeProvider([{
            "category": "image_generation",
            "tools": ["midjourney", "ideogram", "made_up_tool", "leonardo"],
            "reasoning": "Great image tools",
        }])
        orchestrator = Orchestrator(store, matcher, [provider])
        result = await orchestrator.get_recommendations("draw me a cat", "free")
        assert result.source == "ai:fake"
        assert result.category == "image_generation"
        assert [t.id for t in result.tools] == ["ideogram", "leonardo"]
        assert result.reasoning == "Great image tools"

    @pytest.mark.asyncio
    async def test_ai_invalid_category_uses_first_tool(self, store):
        strategy = AICompletionStrategy(store, FakeProvider([
            '```json\n{"category": "pets", "tools": ["gamma"], "reasoning": ""}\n```'
        ]))
        result = await strategy.attempt(RecommendationRequest(query="slides"))
        assert result.category == "presentation"

    @pytest.mark.asyncio
    async def test_all_providers_time_out(self, store, matcher):
        providers = [
            FakeProvider([CompletionTimeout("groq timed out")], name="groq"),
            FakeProvider([RateLimited("gemini rate limited")], name="gemini"),
        ]
        orchestrator = Orchestrator(store, matcher, providers)
        result = await orchestrator.get_recommendations("help me write a blog post", "free")
        assert not result.source.startswith("ai:")
        assert 0 < len(result.tools) <= 3
        assert _free_everywhere(result)
        assert all(len(p.calls) == 1 for p in providers)

    @pytest.mark.asyncio
    async def test_first_provider_success_skips_second(self, store, matcher):
        first = FakeProvider([{"category": "research", "tools": ["elicit"]}], name="groq")
        second = FakeProvider([{"category": "research", "tools": ["consensus"]}], name="gemini")
        orchestrator = Orchestrator(store, matcher, [first, second])
        result = await orchestrator.get_recommendations("papers on sleep", "free")
        assert [t.id for t in result.tools] == ["elicit"]
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_garbage_reply_falls_through(self, store, matcher):
        orchestrator = Orchestrator(store, matcher, [FakeProvider(["no json here"])])
        result = await orchestrator.get_recommendations("I need a logo for my startup", "free")
        assert result.source == "intent_match"


class TestKeywordFallback:

    @pytest.mark.asyncio
    async def test_category_keyword_scoring(self, store, matcher):
        strategy = CategoryKeywordStrategy(store, matcher)
        result = await strategy.attempt(
            RecommendationRequest(query="something for my no-code landing page")
        )
        assert result.category == "app_building"
        assert result.source == "keyword_fallback"

    def test_score_category_counts_tool_names(self, store):
        cat = store.catalog.categories["presentation"]
        with_name = CategoryKeywordStrategy.score_category("gamma", ["gamma"], [], cat.tools)
        without = CategoryKeywordStrategy.score_category("zzz", ["zzz"], [], cat.tools)
        assert with_name > without == 0


class TestPromptGeneration:

    @pytest.mark.asyncio
    async def test_provider_prompt(self, store, matcher):
        provider = FakeProvider(["A detailed prompt."])
        orchestrator = Orchestrator(store, matcher, [provider])
        prompt = await orchestrator.generate_prompt("lovable", "Lovable", "a todo app")
        assert prompt == "A detailed prompt."
        assert "Lovable" in provider.calls[0][0]["content"]

    @pytest.mark.asyncio
    async def test_fallback_prompt(self, store, matcher):
        orchestrator = Orchestrator(store, matcher, [FakeProvider([CompletionTimeout("slow")])])
        prompt = await orchestrator.generate_prompt("lovable", "Lovable", "a todo app")
        assert prompt == basic_prompt("a todo app")
        assert prompt.startswith("Create a todo app")
