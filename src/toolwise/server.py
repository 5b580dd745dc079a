"""
FastMCP server exposing Toolwise.

Usage:
    toolwise serve            # stdio
    toolwise serve --http     # streamable HTTP
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .catalog import CatalogStore
from .completion import CompletionProvider, build_providers
from .conversation import ConversationPolicy
from .discovery import DiscoveryPipeline
from .discovery_log import DiscoveryLog
from .errors import GENERIC_ERROR_MESSAGE, InvalidCategory
from .intent import IntentMatcher
from .recommendation import Orchestrator
from .scraper import PageScraper
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ToolwiseService:
    """Every component, built once and sharing one catalog store."""

    settings: Settings
    store: CatalogStore
    matcher: IntentMatcher
    orchestrator: Orchestrator
    conversation: ConversationPolicy
    discovery: DiscoveryPipeline
    providers: List[CompletionProvider]
    scraper: PageScraper

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        providers: Optional[List[CompletionProvider]] = None,
        scraper: Optional[PageScraper] = None,
    ) -> "ToolwiseService":
        settings = settings or get_settings()
        store = CatalogStore(settings.catalog_path)
        store.load()
        providers = build_providers(settings) if providers is None else providers
        scraper = scraper or PageScraper(
            page_timeout=settings.page_timeout, listing_timeout=settings.listing_timeout
        )
        matcher = IntentMatcher(store)
        orchestrator = Orchestrator(store, matcher, providers)
        return cls(
            settings=settings,
            store=store,
            matcher=matcher,
            orchestrator=orchestrator,
            conversation=ConversationPolicy(orchestrator, matcher, providers),
            discovery=DiscoveryPipeline(
                store,
                DiscoveryLog(settings.discovery_log_path),
                scraper,
                providers,
                request_delay=settings.request_delay,
                bulk_delay=settings.bulk_import_delay,
                listing_url=settings.listing_url,
            ),
            providers=providers,
            scraper=scraper,
        )

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()
        await self.scraper.close()


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def _failure(message: str = GENERIC_ERROR_MESSAGE) -> str:
    return _dump({"success": False, "error": message})


class ToolwiseServer:
    """MCP surface over the recommendation and discovery operations."""

    def __init__(self, service: ToolwiseService) -> None:
        self.service = service
        self.mcp = FastMCP("Toolwise")
        self._register_tools()

    def _register_tools(self) -> None:
        service = self.service

        @self.mcp.tool(
            name="recommend_tools",
            description=(
                "Recommend up to 3 AI tools for a free-text request. budget is "
                "'free' or 'premium'; category is an optional category key."
            ),
        )
        async def recommend_tools(query: str, budget: str = "free", category: str = "") -> str:
            try:
                result = await service.orchestrator.get_recommendations(
                    query, budget, category or None
                )
            except Exception:
                logger.exception("recommend_tools failed")
                return _failure()
            return _dump(result.to_payload())

        @self.mcp.tool(
            name="chat",
            description=(
                "One conversational turn. history is the list of prior "
                "{role, content} messages; only the last 8 are used."
            ),
        )
        async def chat(message: str, history: Optional[List[Dict[str, str]]] = None) -> str:
            try:
                reply = await service.conversation.handle(message, history or [])
            except Exception:
                logger.exception("chat failed")
                return _dump({"success": False, "type": "chat", "response": GENERIC_ERROR_MESSAGE})
            return _dump(reply.to_payload())

        @self.mcp.tool(name="list_categories", description="List catalog categories with tool counts.")
        async def list_categories() -> str:
            summaries = service.store.categories_summary()
            return _dump({
                "success": True,
                "categories": [s.model_dump(by_alias=True) for s in summaries],
            })

        @self.mcp.tool(
            name="tools_by_category",
            description="List the tools in one category, optionally only those with a free tier.",
        )
        async def tools_by_category(category: str, free_only: bool = False) -> str:
            try:
                tools = service.store.tools_by_category(category, free_only)
            except InvalidCategory:
                return _failure("Category not found")
            return _dump({"success": True, "tools": [t.to_payload() for t in tools]})

        @self.mcp.tool(
            name="tools_by_ids",
            description="Look up tools by id, in the given order, optionally free-tier only.",
        )
        async def tools_by_ids(ids: List[str], free_only: bool = False) -> str:
            tools = service.store.tools_by_ids(ids, free_only)
            return _dump({"success": True, "tools": [t.to_payload() for t in tools]})

        @self.mcp.tool(
            name="generate_prompt",
            description="Write a ready-to-paste prompt for a specific tool from a short description.",
        )
        async def generate_prompt(tool_id: str, tool_name: str, description: str) -> str:
            try:
                prompt = await service.orchestrator.generate_prompt(tool_id, tool_name, description)
            except Exception:
                logger.exception("generate_prompt failed")
                return _failure()
            return _dump({"success": True, "prompt": prompt, "toolName": tool_name})

        @self.mcp.tool(
            name="discover_tool_url",
            description="Analyze a tool's website and add it to the catalog if it is a new AI tool.",
        )
        async def discover_tool_url(url: str) -> str:
            return await self._discover(service.discovery.discover_by_url(url))

        @self.mcp.tool(
            name="discover_tool_name",
            description="Find a tool's website from its name and add it to the catalog.",
        )
        async def discover_tool_name(name: str) -> str:
            return await self._discover(service.discovery.discover_by_name(name))

        @self.mcp.tool(
            name="run_scrape",
            description="Scrape the AI tool directory and add every new tool found.",
        )
        async def run_scrape() -> str:
            try:
                summary = await service.discovery.run_full_scrape()
            except Exception:
                logger.exception("run_scrape failed")
                return _failure()
            return _dump({"success": True, **summary.model_dump()})

        @self.mcp.tool(
            name="bulk_import",
            description="Import the curated list of popular AI tools, skipping known ones.",
        )
        async def bulk_import() -> str:
            try:
                summary = await service.discovery.bulk_import()
            except Exception:
                logger.exception("bulk_import failed")
                return _failure()
            return _dump({"success": True, **summary.model_dump()})

        @self.mcp.tool(name="discovery_stats", description="Catalog size and discovery statistics.")
        async def discovery_stats() -> str:
            return _dump(service.discovery.stats().model_dump(mode="json", by_alias=True))

    @staticmethod
    async def _discover(pending) -> str:
        try:
            result = await pending
        except Exception:
            logger.exception("discovery failed")
            return _failure()
        return _dump(result.to_payload())

    def run(self, transport: str = "stdio") -> None:
        """Start the server on *transport*."""
        catalog = self.service.store.catalog
        print(
            f"Toolwise starting ({transport} mode, {catalog.metadata.total_tools} tools, "
            f"{len(self.service.providers)} completion provider(s))...",
            file=sys.stderr,
        )
        self.mcp.run(transport=transport)
