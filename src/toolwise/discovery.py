"""
Catalog discovery pipeline.

Per candidate:

1. dedup against existing tool ids and lowercase names
2. fetch the page and extract structural hints
3. classify the hints into a catalog entry (completion providers in
   priority order, then a deterministic keyword classifier)
4. commit through the catalog store (category must exist, id must be new)
5. append a discovery record

Batch runs never abort on a single candidate and pause between external
fetches.
"""

import asyncio
import json
import logging
import re
from importlib import resources
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set

import yaml
from pydantic import ValidationError

from .catalog import CatalogStore
from .completion import CompletionProvider, parse_json_object
from .discovery_log import DiscoveryLog
from .errors import (
    ExternalServiceUnavailable,
    MalformedResponse,
    MissingVerdict,
    NotAnAITool,
    ToolwiseError,
)
from .models import (
    CatalogStats,
    ClassifiedTool,
    DiscoveryErrorKind,
    DiscoveryResult,
    PageHints,
    ScrapeSummary,
)
from .scraper import PageScraper

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "coding_assistance"

# Keyword table for classification without a completion provider.
# Scores one point per keyword found; ties keep table order.
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "app_building": ["app", "website", "build", "deploy", "full-stack", "no-code"],
    "image_generation": ["image", "picture", "generate", "art", "illustration"],
    "image_editing": ["edit", "photo", "retouch", "background", "enhance"],
    "video_creation": ["video", "animation", "clip", "movie", "reel"],
    "coding_assistance": ["code", "programming", "developer", "ide", "debug"],
    "writing": ["write", "content", "blog", "article", "copy"],
    "design": ["design", "graphic", "logo", "ui", "template"],
    "presentation": ["presentation", "slide", "deck", "pitch"],
    "audio": ["audio", "music", "voice", "sound", "speech"],
}

# Skip reasons that count as "skipped" rather than "errors" in batch summaries.
_SKIP_KINDS = {
    DiscoveryErrorKind.DUPLICATE_ENTITY,
    DiscoveryErrorKind.INVALID_CATEGORY,
    DiscoveryErrorKind.NOT_AN_AI_TOOL,
}

_SLUG_RE = re.compile(r"[^a-z0-9]+")

Sleeper = Callable[[float], Awaitable[None]]


def slugify(name: str) -> str:
    """``"Leonardo AI"`` -> ``"leonardo_ai"``."""
    slug = _SLUG_RE.sub("_", (name or "").lower()).strip("_")
    return slug or "unknown_tool"


def load_seed_tools() -> List[Dict[str, str]]:
    """Curated ``{url, name}`` entries for bulk import."""
    text = resources.files("toolwise").joinpath("data", "seed_tools.yaml").read_text(
        encoding="utf-8"
    )
    data = yaml.safe_load(text) or {}
    return [
        {"url": str(e["url"]), "name": str(e.get("name", ""))}
        for e in data.get("tools") or []
        if e.get("url")
    ]


def keyword_classify(hints: PageHints) -> ClassifiedTool:
    """Deterministic classification with conservative defaults."""
    text = json.dumps(hints.model_dump(mode="json")).lower()
    best, best_score = DEFAULT_CATEGORY, 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        score = sum(1 for keyword in keywords if keyword in text)
        if score > best_score:
            best, best_score = category, score

    name = hints.name or re.split(r"[-–|]", hints.title or "")[0].strip() or "Unknown Tool"
    return ClassifiedTool(
        is_ai_tool=True,
        id=slugify(name),
        name=name,
        best_for=hints.description or "AI tool",
        category=best,
        limits="Check website for free tier details",
        why_suits_you=hints.description or "An AI tool that might help with your project",
        ease=3,
        url=hints.url or "#",
        accepts_prompt=False,
    )


class DiscoveryPipeline:
    """Finds new tools and commits them to the catalog."""

    def __init__(
        self,
        store: CatalogStore,
        log: DiscoveryLog,
        scraper: PageScraper,
        providers: Optional[Sequence[CompletionProvider]] = None,
        request_delay: float = 2.0,
        bulk_delay: float = 1.5,
        listing_url: str = "",
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self.store = store
        self.log = log
        self.scraper = scraper
        self.providers = list(providers or [])
        self.request_delay = request_delay
        self.bulk_delay = bulk_delay
        self.listing_url = listing_url
        self._sleep = sleep or asyncio.sleep

    # ---- classification --------------------------------------------------

    def classification_prompt(self) -> str:
        categories = "\n".join(
            f"- {key}: {cat.name}" for key, cat in self.store.catalog.categories.items()
        )
        return (
            "You are a tool analyst for an AI tool recommendation catalog. Analyze the "
            "provided tool information and create a structured entry.\n\n"
            f"EXISTING CATEGORIES (use one of these keys):\n{categories}\n\n"
            "RESPOND IN THIS EXACT JSON FORMAT:\n"
            "{\n"
            '  "isAITool": true/false,\n'
            '  "id": "lowercase_underscore_name",\n'
            '  "name": "Tool Name",\n'
            '  "bestFor": "One line describing what it is best for",\n'
            '  "category": "category key from the list above",\n'
            '  "deploy": {"available": true/false, "type": "Free/Paid/N/A", "note": "Brief deploy note"},\n'
            '  "limits": "Free tier limits",\n'
            '  "pricing": {"free": true/false, "premium": "$X/month or null"},\n'
            '  "whySuitsYou": "One sentence on why a user would want this",\n'
            '  "ease": 1-5,\n'
            '  "url": "https://...",\n'
            '  "acceptsPrompt": true/false,\n'
            '  "promptHint": "What kind of prompt to write (if acceptsPrompt is true)"\n'
            "}\n\n"
            "RULES:\n"
            "- Set isAITool to false if this is NOT an AI tool\n"
            "- If you cannot determine pricing, set free: true and premium: null\n"
            "- Ease is 1-5 (5 = easiest for beginners)\n"
            "- Use existing category keys ONLY"
        )

    async def _classify_with(self, provider: CompletionProvider, hints: PageHints) -> ClassifiedTool:
        payload = json.dumps(hints.model_dump(mode="json", exclude_none=True), indent=2)
        text = await provider.complete(
            [
                {"role": "system", "content": self.classification_prompt()},
                {"role": "user", "content": f"Analyze this tool:\n{payload}"},
            ],
            temperature=0.3,
            max_tokens=500,
            json_mode=True,
        )
        data = parse_json_object(text)
        verdict = data.get("isAITool")
        if not isinstance(verdict, bool):
            raise MissingVerdict(f"isAITool must be a boolean, got {verdict!r}")
        if not verdict:
            raise NotAnAITool(f"{hints.title or hints.name or hints.url} is not an AI tool")
        data["id"] = slugify(str(data.get("id") or data.get("name") or hints.guessed_name()))
        if not data.get("url"):
            data["url"] = hints.url
        pricing = data.get("pricing")
        if isinstance(pricing, dict) and not pricing.get("free") and not pricing.get("premium"):
            pricing["premium"] = "Paid plans, see website"
        try:
            return ClassifiedTool.model_validate(data)
        except ValidationError as exc:
            raise MalformedResponse(f"classification failed validation: {exc}") from exc

    async def classify(self, hints: PageHints) -> ClassifiedTool:
        """Classify *hints*; raises NotAnAITool when a provider rejects it.

        Candidates that got an answer without a boolean verdict are rejected
        unless a later provider accepts them; they never reach the keyword
        classifier.
        """
        unclear: Optional[MissingVerdict] = None
        for provider in self.providers:
            try:
                classified = await self._classify_with(provider, hints)
            except MissingVerdict as exc:
                logger.warning("Classification via %s gave no verdict: %s", provider.name, exc)
                unclear = exc
                continue
            except (ExternalServiceUnavailable, MalformedResponse) as exc:
                logger.warning("Classification via %s failed: %s", provider.name, exc)
                continue
            logger.info("Classified %s -> %s via %s", classified.name, classified.category, provider.name)
            return classified
        if unclear is not None:
            raise NotAnAITool(
                f"{hints.title or hints.name or hints.url}: no clear AI-tool verdict"
            ) from unclear
        classified = keyword_classify(hints)
        logger.info("Keyword-classified %s -> %s", classified.name, classified.category)
        return classified

    # ---- single candidate ------------------------------------------------

    @staticmethod
    def _failure(kind: DiscoveryErrorKind, message: str) -> DiscoveryResult:
        return DiscoveryResult(success=False, error=kind, message=message)

    async def _admit(self, hints: PageHints, known: Set[str], source_url: str) -> DiscoveryResult:
        guessed = hints.guessed_name()
        if guessed and guessed in known:
            logger.info("Skipping %s: already in catalog", guessed)
            return self._failure(DiscoveryErrorKind.DUPLICATE_ENTITY, "Tool already exists in catalog")

        try:
            classified = await self.classify(hints)
            tool = classified.to_tool()
            await self.store.commit_tool(classified.category, tool)
        except ToolwiseError as exc:
            logger.info("Rejected %s: %s", guessed or source_url, exc)
            return self._failure(exc.kind, str(exc))
        except ValidationError as exc:
            logger.warning("Classified entry for %s is invalid: %s", source_url, exc)
            return self._failure(DiscoveryErrorKind.MALFORMED_RESPONSE, "Classified entry is invalid")

        self.log.append(tool, classified.category, source_url)
        return DiscoveryResult(success=True, tool=tool, category=classified.category)

    async def _discover_url(self, url: str, known: Set[str], name: Optional[str] = None) -> DiscoveryResult:
        try:
            hints = await self.scraper.analyze_url(url)
        except ExternalServiceUnavailable:
            return self._failure(
                DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE, "Could not access the website"
            )
        if name:
            hints = hints.model_copy(update={"name": name})
        return await self._admit(hints, known, source_url=url)

    async def discover_by_url(self, url: str) -> DiscoveryResult:
        logger.info("Discovering tool from %s", url)
        return await self._discover_url(url, self.store.existing_keys())

    async def discover_by_name(self, name: str) -> DiscoveryResult:
        """Try the usual domains for *name* until one yields a tool."""
        logger.info("Searching for tool %r", name)
        known = self.store.existing_keys()
        if name.lower().strip() in known:
            return self._failure(DiscoveryErrorKind.DUPLICATE_ENTITY, "Tool already exists in catalog")

        slug = re.sub(r"\s+", "", name.lower())
        candidates = [
            f"https://{slug}.com",
            f"https://{slug}.ai",
            f"https://{slug}.io",
            f"https://www.{slug}.com",
        ]
        for url in candidates:
            result = await self._discover_url(url, known)
            if result.success or result.error == DiscoveryErrorKind.DUPLICATE_ENTITY:
                return result
        return self._failure(
            DiscoveryErrorKind.EXTERNAL_SERVICE_UNAVAILABLE, f'Could not find "{name}" online'
        )

    # ---- batches ---------------------------------------------------------

    @staticmethod
    def _tally(summary: ScrapeSummary, result: DiscoveryResult, known: Set[str]) -> None:
        if result.success and result.tool is not None:
            summary.added += 1
            known.add(result.tool.id)
            known.add(result.tool.name.lower())
        elif result.error in _SKIP_KINDS:
            summary.skipped += 1
        else:
            summary.errors += 1

    async def run_full_scrape(self, listing_url: Optional[str] = None) -> ScrapeSummary:
        """Discover every new tool on a directory listing."""
        url = listing_url or self.listing_url
        logger.info("Starting full directory scrape of %s", url)
        summary = ScrapeSummary()
        known = self.store.existing_keys()
        candidates = await self.scraper.fetch_listing(url)
        summary.discovered = len(candidates)

        fetched = False
        for candidate in candidates:
            try:
                if (candidate.name or "").lower() in known:
                    summary.skipped += 1
                    continue
                if fetched:
                    await self._sleep(self.request_delay)
                fetched = True

                hints = candidate
                if candidate.url:
                    try:
                        detailed = await self.scraper.analyze_url(candidate.url)
                        hints = detailed.model_copy(update={
                            "name": candidate.name,
                            "description": detailed.description or candidate.description,
                            "source": candidate.source,
                        })
                    except ExternalServiceUnavailable:
                        logger.debug("Using listing data only for %s", candidate.name)
                self._tally(summary, await self._admit(hints, known, candidate.url), known)
            except Exception as exc:
                logger.error("Error processing %s: %s", candidate.name, exc)
                summary.errors += 1

        logger.info(
            "Scrape complete: %d added, %d skipped, %d errors",
            summary.added, summary.skipped, summary.errors,
        )
        return summary

    async def bulk_import(self, entries: Optional[Sequence[Dict[str, str]]] = None) -> ScrapeSummary:
        """Discover each curated ``{url, name}`` entry."""
        entries = list(entries) if entries is not None else load_seed_tools()
        summary = ScrapeSummary(discovered=len(entries))
        known = self.store.existing_keys()
        logger.info("Bulk import of %d tools", len(entries))

        fetched = False
        for entry in entries:
            name = entry.get("name", "")
            if name and (name.lower() in known or slugify(name) in known):
                summary.skipped += 1
                continue
            if fetched:
                await self._sleep(self.bulk_delay)
            fetched = True
            try:
                result = await self._discover_url(entry["url"], known, name=name or None)
            except Exception as exc:
                logger.error("Error importing %s: %s", entry.get("url"), exc)
                summary.errors += 1
                continue
            self._tally(summary, result, known)

        logger.info(
            "Bulk import complete: %d added, %d skipped, %d errors",
            summary.added, summary.skipped, summary.errors,
        )
        return summary

    # ---- stats -----------------------------------------------------------

    def stats(self) -> CatalogStats:
        catalog = self.store.catalog
        log_state = self.log.state
        return CatalogStats(
            total_tools=catalog.metadata.total_tools,
            categories=len(catalog.categories),
            last_updated=catalog.metadata.last_updated,
            total_discovered=log_state.total_discovered,
            last_scrape=log_state.last_scrape,
        )
