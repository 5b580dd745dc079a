"""
Command-line interface for Toolwise.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from .errors import InvalidCategory
from .models import Recommendation
from .server import ToolwiseServer, ToolwiseService
from .settings import DEFAULT_CONFIG_TOML, default_config_path, get_settings

FORMAT_OPTION = click.option(
    "--format",
    "output_format",
    default="table",
    type=click.Choice(["table", "json"]),
    help="Output format",
)


def _configure_logging(level: Optional[str]) -> None:
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _print_tool(index: int, tool: Dict[str, Any]) -> None:
    price = "Free" if tool.get("pricing", {}).get("free") else tool.get("pricing", {}).get("premium")
    print(f"  {index}. {tool.get('name')} [{tool.get('id')}] ({price})")
    print(f"     {tool.get('bestFor')}")
    print(f"     {tool.get('url')}")


def _print_recommendation(result: Recommendation) -> None:
    payload = result.to_payload()
    print(f"\n=== Recommendations ({payload['category']}, via {payload['source']}) ===")
    if payload["reasoning"]:
        print(payload["reasoning"])
    for i, tool in enumerate(payload["tools"], 1):
        _print_tool(i, tool)
    if payload["followUps"]:
        print("\nYou might also ask:")
        for follow_up in payload["followUps"]:
            print(f"  - {follow_up['text']}")


async def _with_service(fn):
    service = ToolwiseService.create()
    try:
        return await fn(service)
    finally:
        await service.close()


@click.group()
@click.option("--log-level", default=None, help="Logging level (default from config)")
def main(log_level: Optional[str]):
    """Toolwise - AI tool recommendations and catalog discovery."""
    _configure_logging(log_level)


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to for HTTP mode")
@click.option("--port", default=8000, help="Port to bind to for HTTP mode")
@click.option("--http", is_flag=True, help="Use streamable HTTP transport instead of stdio")
def serve(host: str, port: int, http: bool):
    """Start the Toolwise MCP server."""
    server = ToolwiseServer(ToolwiseService.create())
    if http:
        server.mcp.settings.host = host
        server.mcp.settings.port = port
    try:
        server.run("streamable-http" if http else "stdio")
    except KeyboardInterrupt:
        print("Toolwise: Interrupted by user", file=sys.stderr)


@main.command()
@click.argument("query")
@click.option(
    "--budget", default="free", type=click.Choice(["free", "premium"]), help="Budget preference"
)
@click.option("--category", default=None, help="Category key to recommend from")
@FORMAT_OPTION
def recommend(query: str, budget: str, category: Optional[str], output_format: str):
    """Recommend tools for QUERY."""

    async def _recommend(service: ToolwiseService):
        result = await service.orchestrator.get_recommendations(query, budget, category)
        if output_format == "json":
            _print_json(result.to_payload())
        else:
            _print_recommendation(result)

    asyncio.run(_with_service(_recommend))


@main.command()
def chat():
    """Interactive conversation. Type 'quit' to leave."""

    async def _chat(service: ToolwiseService):
        history: List[Dict[str, str]] = []
        print("Toolwise chat. Type 'quit' to leave.\n")
        while True:
            try:
                message = input("you> ").strip()
            except EOFError:
                break
            if not message:
                continue
            if message.lower() in ("quit", "exit"):
                break
            reply = await service.conversation.handle(message, history)
            print(f"toolwise> {reply.response}")
            if reply.recommendation is not None:
                for i, tool in enumerate(reply.recommendation.to_payload()["tools"], 1):
                    _print_tool(i, tool)
            history.append({"role": "user", "content": message})
            history.append({"role": "assistant", "content": reply.response})

    asyncio.run(_with_service(_chat))


@main.command()
@FORMAT_OPTION
def categories(output_format: str):
    """List catalog categories."""

    async def _categories(service: ToolwiseService):
        summaries = service.store.categories_summary()
        if output_format == "json":
            _print_json([s.model_dump(by_alias=True) for s in summaries])
            return
        print("\n=== Categories ===")
        for summary in summaries:
            print(f"  {summary.icon} {summary.id}: {summary.name} ({summary.tool_count} tools)")

    asyncio.run(_with_service(_categories))


@main.command()
@click.argument("category")
@click.option("--free-only", is_flag=True, help="Only tools with a free tier")
@FORMAT_OPTION
def tools(category: str, free_only: bool, output_format: str):
    """List the tools in CATEGORY."""

    async def _tools(service: ToolwiseService):
        found = service.store.tools_by_category(category, free_only)
        if output_format == "json":
            _print_json([t.to_payload() for t in found])
            return
        print(f"\n=== {category} ({len(found)} tools) ===")
        for i, tool in enumerate(found, 1):
            _print_tool(i, tool.to_payload())

    try:
        asyncio.run(_with_service(_tools))
    except InvalidCategory:
        raise click.ClickException(f"Unknown category: {category}")


@main.command()
@click.argument("tool_id")
@click.argument("description")
@click.option("--name", "tool_name", default=None, help="Tool display name (default: catalog name)")
def prompt(tool_id: str, description: str, tool_name: Optional[str]):
    """Write a ready-to-paste prompt for TOOL_ID."""

    async def _prompt(service: ToolwiseService):
        tool = service.store.find_tool_by_id(tool_id)
        name = tool_name or (tool.name if tool else tool_id)
        print(await service.orchestrator.generate_prompt(tool_id, name, description))

    asyncio.run(_with_service(_prompt))


def _print_discovery(payload: Dict[str, Any], output_format: str) -> None:
    if output_format == "json":
        _print_json(payload)
    elif payload["success"]:
        tool = payload["tool"]
        print(f"✅ Added {tool['name']} [{tool['id']}] to {payload['category']}")
    else:
        print(f"❌ {payload.get('message') or payload.get('error')}")


@main.command("discover-url")
@click.argument("url")
@FORMAT_OPTION
def discover_url(url: str, output_format: str):
    """Analyze URL and add the tool to the catalog."""

    async def _discover(service: ToolwiseService):
        result = await service.discovery.discover_by_url(url)
        _print_discovery(result.to_payload(), output_format)

    asyncio.run(_with_service(_discover))


@main.command("discover-name")
@click.argument("name")
@FORMAT_OPTION
def discover_name(name: str, output_format: str):
    """Find the tool called NAME online and add it to the catalog."""

    async def _discover(service: ToolwiseService):
        result = await service.discovery.discover_by_name(name)
        _print_discovery(result.to_payload(), output_format)

    asyncio.run(_with_service(_discover))


def _print_summary(title: str, summary, output_format: str) -> None:
    if output_format == "json":
        _print_json(summary.model_dump())
        return
    print(f"\n=== {title} ===")
    print(f"Discovered: {summary.discovered}")
    print(f"Added: {summary.added}")
    print(f"Skipped: {summary.skipped}")
    print(f"Errors: {summary.errors}")


@main.command()
@click.option("--url", "listing_url", default=None, help="Directory listing to scrape")
@FORMAT_OPTION
def scrape(listing_url: Optional[str], output_format: str):
    """Scrape the AI tool directory for new tools."""

    async def _scrape(service: ToolwiseService):
        summary = await service.discovery.run_full_scrape(listing_url)
        _print_summary("Scrape Complete", summary, output_format)

    asyncio.run(_with_service(_scrape))


@main.command("bulk-import")
@FORMAT_OPTION
def bulk_import(output_format: str):
    """Import the curated list of popular AI tools."""

    async def _import(service: ToolwiseService):
        summary = await service.discovery.bulk_import()
        _print_summary("Bulk Import Complete", summary, output_format)

    asyncio.run(_with_service(_import))


@main.command()
@FORMAT_OPTION
def stats(output_format: str):
    """Show catalog and discovery statistics."""

    async def _stats(service: ToolwiseService):
        data = service.discovery.stats()
        if output_format == "json":
            _print_json(data.model_dump(mode="json", by_alias=True))
            return
        print("\n=== Catalog Statistics ===")
        print(f"Total Tools: {data.total_tools}")
        print(f"Categories: {data.categories}")
        print(f"Last Updated: {data.last_updated or 'N/A'}")
        print(f"Discovered Tools: {data.total_discovered}")
        print(f"Last Scrape: {data.last_scrape or 'Never'}")

    asyncio.run(_with_service(_stats))


@main.command("init-config")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init_config(force: bool):
    """Write a starter config file."""
    path = default_config_path()
    if path.exists() and not force:
        print(f"Config already exists at {path}")
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
    print(f"Wrote {path}")


if __name__ == "__main__":
    main()
