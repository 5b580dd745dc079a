"""
Recommendation orchestration.

``Orchestrator.get_recommendations`` runs an ordered chain of strategies and
returns the first result that yields at least one tool:

1. ``CategoryStrategy``         caller already knows the category
2. ``AICompletionStrategy``     one per configured completion provider
3. ``IntentMatchStrategy``      local pattern scoring and keyword search
4. ``CategoryKeywordStrategy``  category keyword scoring
5. ``DefaultStrategy``          well-known general-purpose tools

A strategy that raises is logged and treated as "no result".
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .catalog import CatalogStore
from .completion import CompletionProvider, parse_json_object
from .intent import IntentMatcher, sort_by_ease
from .models import Budget, Recommendation, ScoredTool

logger = logging.getLogger(__name__)

MAX_RECOMMENDED = 3
DEFAULT_TOOL_IDS = ("chatgpt", "perplexity", "canva")

CATEGORY_KEYWORD_WEIGHT = 10
PARTIAL_WORD_WEIGHT = 3
TOOL_NAME_WEIGHT = 15
BEST_FOR_WEIGHT = 5

TOOL_PROMPT_CONTEXTS = {
    # app builders
    "lovable": "Lovable builds full-stack web apps. Include: tech stack preferences, UI components, features, pages and functionality.",
    "bolt": "Bolt.new creates web apps in the browser. Specify: framework, components, styling and features.",
    "v0": "v0 generates React/Next.js UI components. Describe: component type, styling, interactivity and variants.",
    "replit": "Replit is a coding environment. Specify: programming language, project type and what it should do.",
    # images
    "ideogram": "Ideogram excels at text in images. Include: image style, subjects, colors, mood and any text to include.",
    "leonardo": "Leonardo.ai creates detailed images. Specify: art style, subject, lighting, composition and quality settings.",
    "midjourney": "Midjourney creates artistic images. Include: artistic style, subject, mood, lighting and aspect ratio.",
    "bing_image_creator": "Bing uses DALL-E 3. Describe: subject, style, setting, mood and composition.",
    # video
    "runway": "Runway generates AI videos. Describe: scene, motion, style, duration and visual effects.",
    "invideo": "InVideo creates videos from descriptions. Include: topic, style, length, tone and call-to-action.",
    # presentations
    "gamma": "Gamma creates presentations. Specify: topic, audience, key points, style and number of slides.",
    "tome": "Tome makes storytelling presentations. Include: narrative arc, key messages and visual style.",
    # audio
    "suno": "Suno creates songs. Include: genre, mood, tempo, lyric theme and musical style.",
    "elevenlabs": "ElevenLabs converts text to speech. Include: the exact script and voice characteristics.",
    "murf": "Murf creates professional voiceovers. Include: script, tone, pacing and audience.",
}


def coerce_budget(budget: Union[Budget, str, None]) -> Budget:
    if isinstance(budget, Budget):
        return budget
    if budget and str(budget).strip().lower() in ("premium", "paid", "pro"):
        return Budget.PREMIUM
    return Budget.FREE


def filter_budget(tools: Sequence[ScoredTool], budget: Budget) -> List[ScoredTool]:
    """Drop paid-only tools when the budget is free."""
    if budget != Budget.FREE:
        return list(tools)
    return [t for t in tools if t.tool.pricing.free]


@dataclass
class RecommendationRequest:
    query: str
    budget: Budget = Budget.FREE
    category: Optional[str] = None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class RecommendationStrategy:
    """One step of the fallback chain."""

    name = "strategy"

    async def attempt(self, request: RecommendationRequest) -> Optional[Recommendation]:
        raise NotImplementedError


class CategoryStrategy(RecommendationStrategy):
    """Tools straight from a caller-supplied category."""

    name = "category"

    def __init__(self, store: CatalogStore, matcher: IntentMatcher) -> None:
        self.store = store
        self.matcher = matcher

    async def attempt(self, request):
        key = request.category
        if not key or key not in self.store.catalog.categories:
            return None
        tools = filter_budget(sort_by_ease(self.store.category_tools(key)), request.budget)
        if not tools:
            return None
        return Recommendation(
            source="ai_category",
            category=key,
            reasoning=(
                f"Here are the best {request.budget.value} tools for "
                f"{self.matcher.extract_key_intent(request.query)}:"
            ),
            tools=tools[:MAX_RECOMMENDED],
        )


class AICompletionStrategy(RecommendationStrategy):
    """Ask a completion provider to pick tool ids from the whole catalog."""

    def __init__(self, store: CatalogStore, provider: CompletionProvider) -> None:
        self.store = store
        self.provider = provider
        self.name = f"ai:{provider.name}"

    def build_prompt(self, request: RecommendationRequest) -> str:
        sections = []
        for cat in self.store.catalog.categories.values():
            lines = "\n    ".join(f"{t.id} ({t.name}): {t.best_for}" for t in cat.tools)
            sections.append(f"{cat.name}:\n    {lines}")
        free = request.budget == Budget.FREE
        return (
            "You help users find the right AI tool for their needs.\n\n"
            f'USER QUERY: "{request.query}"\n'
            f"BUDGET: {'Free tools only' if free else 'Can include premium tools'}\n\n"
            "AVAILABLE TOOLS BY CATEGORY:\n"
            + "\n\n".join(sections)
            + "\n\nYOUR TASK:\n"
            "1. Understand what the user wants to accomplish\n"
            "2. Select 1-3 tools that best match their needs\n"
            + (
                "3. Only recommend tools with a free tier\n\n"
                if free
                else "3. Recommend the best tools regardless of price\n\n"
            )
            + "RESPOND IN THIS EXACT JSON FORMAT:\n"
            '{"category": "category key", "tools": ["tool_id_1", "tool_id_2"], '
            '"reasoning": "brief explanation"}\n\n'
            "Only use tool ids listed above. Maximum 3 tools."
        )

    async def attempt(self, request):
        text = await self.provider.complete(
            [{"role": "user", "content": self.build_prompt(request)}],
            temperature=0.3,
            max_tokens=400,
            json_mode=True,
        )
        data = parse_json_object(text)
        ids = data.get("tools") or []
        if not isinstance(ids, list):
            return None
        tools = self.store.tools_by_ids(
            [str(i) for i in ids], free_only=request.budget == Budget.FREE
        )[:MAX_RECOMMENDED]
        if not tools:
            return None
        category = data.get("category")
        if category not in self.store.catalog.categories:
            category = tools[0].category_key
        return Recommendation(
            source=self.name,
            category=category,
            reasoning=str(data.get("reasoning") or ""),
            tools=tools,
        )


class IntentMatchStrategy(RecommendationStrategy):
    """Local pattern scoring and keyword search."""

    name = "intent_match"

    def __init__(self, store: CatalogStore, matcher: IntentMatcher) -> None:
        self.store = store
        self.matcher = matcher

    async def attempt(self, request):
        match = self.matcher.score_patterns(request.query)
        if not match.matched:
            return None
        tools = filter_budget(match.tools, request.budget)
        if len(tools) < MAX_RECOMMENDED and match.category in self.store.catalog.categories:
            seen = {t.id for t in tools}
            for entry in filter_budget(
                sort_by_ease(self.store.category_tools(match.category)), request.budget
            ):
                if len(tools) >= MAX_RECOMMENDED:
                    break
                if entry.id not in seen:
                    tools.append(entry)
                    seen.add(entry.id)
        if not tools:
            return None
        return Recommendation(
            source="intent_match",
            category=match.category,
            reasoning=(
                f'Based on your query about "{self.matcher.extract_key_intent(request.query)}", '
                "these tools are best suited for your needs."
            ),
            tools=tools[:MAX_RECOMMENDED],
        )


class CategoryKeywordStrategy(RecommendationStrategy):
    """Score categories by keywords, tool names and bestFor phrases."""

    name = "keyword_fallback"

    def __init__(self, store: CatalogStore, matcher: IntentMatcher) -> None:
        self.store = store
        self.matcher = matcher

    @staticmethod
    def score_category(query: str, words: List[str], keywords, tools) -> int:
        score = 0
        for keyword in keywords:
            keyword = keyword.lower()
            if keyword in query:
                score += CATEGORY_KEYWORD_WEIGHT
            for word in words:
                if keyword in word or word in keyword:
                    score += PARTIAL_WORD_WEIGHT
        for tool in tools:
            if tool.name.lower() in query:
                score += TOOL_NAME_WEIGHT
            if tool.best_for.lower() in query:
                score += BEST_FOR_WEIGHT
        return score

    async def attempt(self, request):
        query = request.query.lower()
        words = query.split()
        best_key, best_score = None, 0
        for key, cat in self.store.catalog.categories.items():
            if not cat.tools:
                continue
            score = self.score_category(query, words, cat.keywords, cat.tools)
            if score > best_score:
                best_key, best_score = key, score
        if best_key is None:
            return None
        tools = filter_budget(sort_by_ease(self.store.category_tools(best_key)), request.budget)
        if not tools:
            return None
        return Recommendation(
            source="keyword_fallback",
            category=best_key,
            reasoning=(
                f'Based on your query about "{self.matcher.extract_key_intent(query)}", '
                "these tools are best suited for your needs."
            ),
            tools=tools[:MAX_RECOMMENDED],
        )


class DefaultStrategy(RecommendationStrategy):
    """Well-known general-purpose tools.  Always returns a result."""

    name = "default"

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    async def attempt(self, request):
        tools = self.store.tools_by_ids(
            DEFAULT_TOOL_IDS, free_only=request.budget == Budget.FREE
        )
        return Recommendation(
            source="default",
            category="general",
            reasoning="Here are versatile AI tools that can help with many tasks.",
            tools=tools[:MAX_RECOMMENDED],
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """Runs the strategy chain and serves the tool-lookup helpers."""

    def __init__(
        self,
        store: CatalogStore,
        matcher: IntentMatcher,
        providers: Optional[Sequence[CompletionProvider]] = None,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.providers = list(providers or [])
        self.category_strategy = CategoryStrategy(store, matcher)
        self.strategies: List[RecommendationStrategy] = [
            *(AICompletionStrategy(store, p) for p in self.providers),
            IntentMatchStrategy(store, matcher),
            CategoryKeywordStrategy(store, matcher),
        ]
        self.default_strategy = DefaultStrategy(store)

    async def get_recommendations(
        self,
        query: str,
        budget: Union[Budget, str, None] = Budget.FREE,
        category: Optional[str] = None,
    ) -> Recommendation:
        request = RecommendationRequest(query=query, budget=coerce_budget(budget), category=category)
        logger.info(
            "Recommending for %r (budget=%s, category=%s)",
            query, request.budget.value, category or "auto-detect",
        )
        chain = [self.category_strategy, *self.strategies]
        result = await self._run(chain, request)
        if result is None:
            result = await self.default_strategy.attempt(request)
        result.follow_ups = self.matcher.follow_up_suggestions(result.category)
        return result

    async def _run(
        self, chain: Sequence[RecommendationStrategy], request: RecommendationRequest
    ) -> Optional[Recommendation]:
        for strategy in chain:
            try:
                result = await strategy.attempt(request)
            except Exception as exc:
                logger.warning("Strategy %s failed: %s", strategy.name, exc)
                continue
            if result is not None and result.tools:
                logger.debug("Strategy %s produced %d tools", strategy.name, len(result.tools))
                return result
        return None

    def tools_by_ids(
        self, tool_ids: Sequence[str], budget: Union[Budget, str, None] = Budget.FREE
    ) -> List[ScoredTool]:
        """Resolve AI-picked ids, skipping unknown and out-of-budget ones."""
        tools = self.store.tools_by_ids(tool_ids, free_only=coerce_budget(budget) == Budget.FREE)
        logger.debug("Resolved %d of %d requested tool ids", len(tools), len(tool_ids))
        return tools

    async def generate_prompt(self, tool_id: str, tool_name: str, description: str) -> str:
        """Write a ready-to-paste prompt for *tool_name*."""
        tool_context = TOOL_PROMPT_CONTEXTS.get(
            tool_id, f"{tool_name} is an AI tool. Be specific about what you want to create."
        )
        messages = [
            {
                "role": "system",
                "content": (
                    f"You are an expert prompt engineer. Write the best possible prompt for {tool_name}.\n\n"
                    f"TOOL CONTEXT: {tool_context}\n\n"
                    "Expand the user's brief description into a detailed prompt with the "
                    f"specifics and settings that work well with {tool_name}.\n"
                    "Output only the prompt text, 150-300 words, no preamble."
                ),
            },
            {
                "role": "user",
                "content": f'Generate an optimized {tool_name} prompt for: "{description}"',
            },
        ]
        for provider in self.providers:
            try:
                text = await provider.complete(messages, temperature=0.7, max_tokens=600)
            except Exception as exc:
                logger.warning("Prompt generation via %s failed: %s", provider.name, exc)
                continue
            if text.strip():
                return text.strip()
        return basic_prompt(description)


def basic_prompt(description: str) -> str:
    return (
        f"Create {description}\n\n"
        "Requirements:\n"
        "- Modern, clean design\n"
        "- Professional quality\n"
        "- User-friendly and intuitive\n"
        "- Responsive and well-organized\n\n"
        "Please make it polished and ready to use."
    )
