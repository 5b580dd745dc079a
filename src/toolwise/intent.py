"""
Intent matching.

Maps free-text requests ("I need a logo for my startup") to a catalog
category and a ranked list of tools without calling any external service.

Key public interface
--------------------
    IntentMatcher.analyze_intent(query)
    IntentMatcher.score_patterns(query)
    IntentMatcher.build_tool_context(tools)
    IntentMatcher.follow_up_suggestions(category)
    IntentMatcher.extract_key_intent(query)

Scoring weights
---------------
    PHRASE_WEIGHT      an intent phrase is a substring of the query
    WORD_WEIGHT        a word of an intent phrase is a whole word of the query
    NAME_WEIGHT        keyword search: a query word occurs in the tool name
    ACCEPT_THRESHOLD   minimum pattern score to accept a match
"""

import logging
import random
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Dict, List, Optional, Sequence, Tuple

import yaml

from .catalog import CatalogStore
from .models import FollowUp, IntentMatch, IntentPattern, ScoredTool

logger = logging.getLogger(__name__)

PHRASE_WEIGHT = 20
WORD_WEIGHT = 5
NAME_WEIGHT = 15
ACCEPT_THRESHOLD = 5
MAX_MATCHED_TOOLS = 6
KEYWORD_CONFIDENCE = 0.3
MIN_SEARCH_WORD = 3

_WORD_PUNCTUATION = ".,!?;:\"'()[]"

# Checked in order; the first keyword contained in the query wins.
KEY_INTENT_PHRASES: Tuple[Tuple[str, str], ...] = (
    ("website", "building a website"),
    ("web", "building a website"),
    ("app", "building applications"),
    ("image", "working with images"),
    ("video", "video creation"),
    ("code", "coding and development"),
    ("write", "writing and content"),
    ("design", "design and graphics"),
    ("graphic", "design and graphics"),
    ("logo", "logo and branding"),
    ("present", "creating presentations"),
    ("music", "audio and music"),
    ("voice", "voice and audio"),
    ("research", "research and learning"),
    ("automate", "automation"),
    ("build", "building your project"),
    ("create", "creating your project"),
    ("edit", "editing content"),
    ("startup", "your startup project"),
)


# ---------------------------------------------------------------------------
# Pattern table
# ---------------------------------------------------------------------------


@dataclass
class IntentTable:
    """Versioned pattern table loaded from ``data/intent_patterns.yaml``."""

    version: int
    patterns: List[IntentPattern]
    guidance_signals: List[str] = field(default_factory=list)
    follow_ups: Dict[str, List[FollowUp]] = field(default_factory=dict)


def parse_intent_table(data: dict) -> IntentTable:
    """Validate a decoded pattern document."""
    patterns = [IntentPattern.model_validate(p) for p in data.get("patterns") or []]
    follow_ups = {
        key: [FollowUp.model_validate(item) for item in items or []]
        for key, items in (data.get("follow_ups") or {}).items()
    }
    return IntentTable(
        version=int(data.get("version", 1)),
        patterns=patterns,
        guidance_signals=[s.lower() for s in data.get("guidance_signals") or []],
        follow_ups=follow_ups,
    )


@lru_cache(maxsize=1)
def load_intent_table() -> IntentTable:
    """Load the packaged pattern table once per process."""
    text = resources.files("toolwise").joinpath("data", "intent_patterns.yaml").read_text(
        encoding="utf-8"
    )
    table = parse_intent_table(yaml.safe_load(text) or {})
    logger.debug("Loaded intent table v%s (%d patterns)", table.version, len(table.patterns))
    return table


def _query_words(query: str) -> List[str]:
    words = []
    for raw in query.split():
        word = raw.strip(_WORD_PUNCTUATION)
        if word:
            words.append(word)
    return words


def sort_by_ease(tools: Sequence[ScoredTool]) -> List[ScoredTool]:
    """Stable sort, easiest first."""
    return sorted(tools, key=lambda t: -(t.tool.ease or 3))


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------


class IntentMatcher:
    """Scores queries against the pattern table and the flat tool index."""

    def __init__(self, store: CatalogStore, table: Optional[IntentTable] = None) -> None:
        self.store = store
        self.table = table or load_intent_table()

    @property
    def patterns(self) -> List[IntentPattern]:
        return self.table.patterns

    def analyze_intent(self, query: str) -> IntentMatch:
        """Decide category, confidence and ranked tools for *query*."""
        text = query.lower().strip()
        guidance = self._detect_guidance(text)
        if guidance is not None:
            return guidance
        return self._score(text)

    def score_patterns(self, query: str) -> IntentMatch:
        """Pattern scoring then keyword search, skipping guidance detection."""
        return self._score(query.lower().strip())

    def _score(self, text: str) -> IntentMatch:
        pattern, score = self.best_pattern(text)
        if pattern is not None and score >= ACCEPT_THRESHOLD:
            return IntentMatch(
                matched=True,
                category=pattern.category,
                context=pattern.context,
                confidence=min(score / PHRASE_WEIGHT, 1.0),
                tools=self.relevant_tools(pattern),
            )

        found = self.search_all_tools(text)
        if found:
            return IntentMatch(
                matched=True,
                category="mixed",
                context=f'The user is looking for: "{text}". Found tools by keyword match.',
                confidence=KEYWORD_CONFIDENCE,
                tools=found,
            )

        return IntentMatch(
            matched=False,
            category=None,
            context="Could not determine specific tool needs from the message.",
            confidence=0.0,
            tools=[],
        )

    # ---- guidance --------------------------------------------------------

    def _detect_guidance(self, text: str) -> Optional[IntentMatch]:
        if not any(signal in text for signal in self.table.guidance_signals):
            return None
        for entry in self.store.flat_tools():
            if entry.name.lower() in text or entry.id.lower() in text:
                return IntentMatch(
                    matched=True,
                    is_guidance=True,
                    category=entry.category_key,
                    context=(
                        f"The user is asking how to use {entry.name}. Do not recommend other "
                        f"tools. Give a short step-by-step guide: getting started, key "
                        f"features, tips for best results. Tool details: "
                        f"{entry.tool.best_for}. URL: {entry.tool.url}"
                    ),
                    confidence=1.0,
                    tools=[entry],
                )
        return None

    # ---- pattern scoring -------------------------------------------------

    @staticmethod
    def _score_pattern(text: str, words: List[str], pattern: IntentPattern) -> int:
        score = 0
        for phrase in pattern.intents:
            if phrase in text:
                score += PHRASE_WEIGHT
            for phrase_word in phrase.split():
                if phrase_word in words:
                    score += WORD_WEIGHT
        return score

    def best_pattern(self, text: str) -> Tuple[Optional[IntentPattern], int]:
        """Highest-scoring pattern; ties keep table order."""
        words = _query_words(text)
        best: Optional[IntentPattern] = None
        best_score = 0
        for pattern in self.table.patterns:
            score = self._score_pattern(text, words, pattern)
            if score > best_score:
                best, best_score = pattern, score
        return best, best_score

    def relevant_tools(self, pattern: IntentPattern, limit: int = MAX_MATCHED_TOOLS) -> List[ScoredTool]:
        """Priority tools in order, padded from the pattern's categories."""
        tools: List[ScoredTool] = []
        added = set()
        for tool_id in pattern.priority:
            entry = self.store.find_tool_by_id(tool_id)
            if entry is None:
                logger.debug("priority tool %s not in catalog; skipping", tool_id)
                continue
            if entry.id not in added:
                tools.append(entry)
                added.add(entry.id)

        for key in pattern.categories:
            for entry in sort_by_ease(self.store.category_tools(key)):
                if len(tools) >= limit:
                    return tools
                if entry.id not in added:
                    tools.append(entry)
                    added.add(entry.id)
        return tools

    # ---- keyword search --------------------------------------------------

    def search_all_tools(self, text: str, limit: int = MAX_MATCHED_TOOLS) -> List[ScoredTool]:
        words = [w for w in _query_words(text) if len(w) >= MIN_SEARCH_WORD]
        if not words:
            return []
        scored: List[Tuple[int, ScoredTool]] = []
        for entry in self.store.flat_tools():
            name = entry.name.lower()
            score = 0
            for word in words:
                if word in entry.search_text:
                    score += WORD_WEIGHT
                if word in name:
                    score += NAME_WEIGHT
            if score > 0:
                scored.append((score, entry))
        scored.sort(key=lambda pair: -pair[0])
        return [entry for _, entry in scored[:limit]]

    # ---- prompt helpers --------------------------------------------------

    @staticmethod
    def build_tool_context(tools: Sequence[ScoredTool]) -> str:
        """Numbered description of *tools* for inclusion in prompts."""
        if not tools:
            return "No specific tools matched."
        blocks = []
        for i, entry in enumerate(tools, start=1):
            tool = entry.tool
            pricing = "Free tier available" if tool.pricing.free else (tool.pricing.premium or "Paid")
            premium = f" | Premium: {tool.pricing.premium}" if tool.pricing.premium else ""
            blocks.append(
                f"{i}. **{tool.name}** (ID: {tool.id})\n"
                f"   - Best for: {tool.best_for}\n"
                f"   - Why it suits: {tool.why_suits_you or 'Great option'}\n"
                f"   - Pricing: {pricing}{premium}\n"
                f"   - Ease of use: {tool.ease or 3}/5\n"
                f"   - Limits: {tool.limits or 'Check website'}"
            )
        return "\n\n".join(blocks)

    def follow_up_suggestions(
        self,
        category: Optional[str],
        limit: int = 3,
        rng: Optional[random.Random] = None,
    ) -> List[FollowUp]:
        """A shuffled handful of next-step suggestions for *category*."""
        options = self.table.follow_ups.get(category or "") or self.table.follow_ups.get("default", [])
        picked = list(options)
        (rng or random).shuffle(picked)
        return picked[:limit]

    @staticmethod
    def extract_key_intent(query: str) -> str:
        text = query.lower()
        for keyword, phrase in KEY_INTENT_PHRASES:
            if keyword in text:
                return phrase
        return "your project"
