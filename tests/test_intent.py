"""Tests for intent matching."""

import random

import pytest

from toolwise.intent import (
    ACCEPT_THRESHOLD,
    IntentMatcher,
    load_intent_table,
    parse_intent_table,
    sort_by_ease,
)


class TestPatternTable:

    def test_packaged_table_loads(self):
        table = load_intent_table()
        assert table.version >= 1
        assert table.patterns
        assert "how to use" in table.guidance_signals
        assert "default" in table.follow_ups

    def test_pattern_categories_exist_in_catalog(self, store):
        keys = set(store.category_keys())
        for pattern in load_intent_table().patterns:
            assert set(pattern.categories) <= keys

    def test_intents_are_lowercased(self):
        table = parse_intent_table({
            "patterns": [{"intents": ["Logo"], "categories": ["design"]}],
        })
        assert table.patterns[0].intents == ["logo"]
        assert table.patterns[0].category == "design"


class TestAnalyzeIntent:

    def test_logo_for_startup(self, matcher):
        match = matcher.analyze_intent("I need a logo for my startup")
        assert match.matched is True
        assert match.category == "design"
        assert match.confidence >= 0.5
        assert match.tools[0].id == "looka"

    def test_exact_phrase_confidence(self, matcher):
        match = matcher.analyze_intent("pitch deck")
        assert match.category == "presentation"
        assert match.confidence >= 0.5

    def test_priority_before_padding(self, matcher):
        match = matcher.analyze_intent("I want to write a blog post")
        ids = [t.id for t in match.tools]
        assert ids[:3] == ["notion_ai", "copy_ai", "jasper"]
        assert len(ids) == len(set(ids))
        assert len(ids) <= 6

    def test_resume_spans_categories(self, matcher):
        match = matcher.analyze_intent("help me make a resume")
        assert match.category == "design"
        ids = [t.id for t in match.tools]
        assert ids[:3] == ["canva_design", "lovable", "notion_ai"]

    def test_keyword_fallback(self, matcher):
        match = matcher.analyze_intent("something like perplexity")
        assert match.matched is True
        assert match.category == "mixed"
        assert match.confidence == pytest.approx(0.3)
        assert match.tools[0].id == "perplexity"

    def test_no_match(self, matcher):
        match = matcher.analyze_intent("zzzz qqqq")
        assert match.matched is False
        assert match.category is None
        assert match.tools == []
        assert match.confidence == 0

    def test_empty_query(self, matcher):
        match = matcher.analyze_intent("")
        assert match.matched is False
        assert match.tools == []


class TestGuidance:

    def test_how_to_use_named_tool(self, matcher):
        match = matcher.analyze_intent("how to use figma for wireframes")
        assert match.is_guidance is True
        assert [t.id for t in match.tools] == ["figma"]
        assert match.confidence == 1.0
        assert "Figma" in match.context

    def test_guidance_signal_without_tool_falls_through(self, matcher):
        match = matcher.analyze_intent("how to make a logo")
        assert match.is_guidance is False
        assert match.category == "design"

    def test_score_patterns_skips_guidance(self, matcher):
        match = matcher.score_patterns("how to use figma")
        assert match.is_guidance is False
        assert match.category == "design"


class TestScoring:

    def test_best_pattern_threshold(self, matcher):
        pattern, score = matcher.best_pattern("i need a logo")
        assert pattern.category == "design"
        assert score >= ACCEPT_THRESHOLD

    def test_word_match_requires_whole_word(self, matcher):
        # both contain the phrase "app"; only the exact word earns word points
        _, with_substring = matcher.best_pattern("apps")
        _, with_word = matcher.best_pattern("app")
        assert with_word > with_substring

    def test_sort_by_ease_is_stable(self, store):
        tools = store.category_tools("app_building")
        ordered = sort_by_ease(tools)
        eases = [t.tool.ease for t in ordered]
        assert eases == sorted(eases, reverse=True)


class TestHelpers:

    def test_build_tool_context(self, store):
        text = IntentMatcher.build_tool_context(store.tools_by_ids(["looka", "midjourney"]))
        assert "1. **Looka** (ID: looka)" in text
        assert "2. **Midjourney**" in text
        assert "Free tier available" in text

    def test_build_tool_context_empty(self):
        assert IntentMatcher.build_tool_context([]) == "No specific tools matched."

    def test_follow_ups_for_category(self, matcher):
        picked = matcher.follow_up_suggestions("design", rng=random.Random(1))
        assert len(picked) == 3
        design_texts = {f.text for f in matcher.table.follow_ups["design"]}
        assert {f.text for f in picked} <= design_texts

    def test_follow_ups_default(self, matcher):
        picked = matcher.follow_up_suggestions("general")
        default_texts = {f.text for f in matcher.table.follow_ups["default"]}
        assert picked and {f.text for f in picked} <= default_texts

    @pytest.mark.parametrize("query,expected", [
        ("I want a website", "building a website"),
        ("make me a logo", "logo and branding"),
        ("hmm", "your project"),
    ])
    def test_extract_key_intent(self, query, expected):
        assert IntentMatcher.extract_key_intent(query) == expected
