"""
Catalog Store.

Owns the persisted catalog document (``~/.toolwise/catalog.json`` by default)
and hands out immutable whole-document snapshots to readers.  The only write
path is :meth:`CatalogStore.commit_tool`, which is serialized by an
``asyncio.Lock`` and persists via atomic tmp-file rename before the in-memory
snapshot is replaced.
"""

import asyncio
import json
import logging
from datetime import date
from importlib import resources
from pathlib import Path
from typing import Iterable, List, Optional, Set

from pydantic import ValidationError

from .errors import DuplicateEntity, InvalidCategory, PersistenceFailure
from .models import Catalog, CategorySummary, ScoredTool, Tool

logger = logging.getLogger(__name__)

_SEED_RESOURCE = "tools.json"


def _read_seed_document() -> str:
    return resources.files("toolwise").joinpath("data", _SEED_RESOURCE).read_text(
        encoding="utf-8"
    )


def build_search_text(tool: Tool, keywords: Iterable[str]) -> str:
    """Lowercase blob used by the keyword scorer."""
    parts = [tool.name, tool.best_for, tool.why_suits_you, tool.limits, " ".join(keywords)]
    return " ".join(p for p in parts if p).lower()


class CatalogStore:
    """Single shared catalog resource.

    Readers use :attr:`catalog` (or the projections) and always see a
    complete snapshot.  Writers go through :meth:`commit_tool`.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._catalog: Catalog = Catalog()
        self._flat: List[ScoredTool] = []
        self._flat_for: Optional[Catalog] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def catalog(self) -> Catalog:
        """Current whole-document snapshot.  Do not mutate."""
        return self._catalog

    # ---- persistence -----------------------------------------------------

    def load(self) -> Catalog:
        """Load the document, seeding it from packaged data when missing."""
        if not self._path.exists():
            logger.info("No catalog at %s; seeding from packaged data", self._path)
            try:
                seed = Catalog.model_validate(json.loads(_read_seed_document()))
            except (OSError, ValueError) as exc:
                raise PersistenceFailure(f"packaged seed catalog unreadable: {exc}") from exc
            seed.metadata.total_tools = seed.count_tools()
            self._write(seed)
            self._catalog = seed
            return seed
        return self.reload()

    def reload(self) -> Catalog:
        """Re-read the persisted document and swap the snapshot."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            catalog = Catalog.model_validate(data)
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"catalog document at {self._path} is unreadable: {exc}") from exc
        dupes = catalog.duplicate_ids()
        if dupes:
            logger.warning("Catalog contains duplicate tool ids: %s", ", ".join(dupes))
        self._catalog = catalog
        logger.debug(
            "Loaded catalog: %d categories, %d tools",
            len(catalog.categories), catalog.metadata.total_tools,
        )
        return catalog

    def _write(self, catalog: Catalog) -> None:
        """Persist via atomic tmp-file rename.  Raises PersistenceFailure."""
        tmp = self._path.with_suffix(".json.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = catalog.model_dump(mode="json", by_alias=True, exclude_none=True)
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            logger.error("Failed to save catalog to %s: %s", self._path, exc)
            try:
                tmp.unlink()
            except OSError:
                pass
            raise PersistenceFailure(str(exc)) from exc
        logger.debug("Catalog saved to %s", self._path)

    # ---- lookups ---------------------------------------------------------

    def flat_tools(self) -> List[ScoredTool]:
        """Every tool flattened with its category, rebuilt per snapshot."""
        catalog = self._catalog
        if self._flat_for is not catalog:
            flat: List[ScoredTool] = []
            for key, cat in catalog.categories.items():
                for tool in cat.tools:
                    flat.append(ScoredTool(
                        tool=tool,
                        category_key=key,
                        category_name=cat.name,
                        category_icon=cat.icon,
                        category_keywords=cat.keywords,
                        search_text=build_search_text(tool, cat.keywords),
                    ))
            self._flat = flat
            self._flat_for = catalog
        return self._flat

    def find_tool_by_id(self, tool_id: str) -> Optional[ScoredTool]:
        for entry in self.flat_tools():
            if entry.id == tool_id:
                return entry
        return None

    def existing_keys(self) -> Set[str]:
        """Tool ids plus lowercase tool names, for dedup checks."""
        keys: Set[str] = set()
        for entry in self.flat_tools():
            keys.add(entry.id)
            keys.add(entry.name.lower())
        return keys

    def category_keys(self) -> List[str]:
        return list(self._catalog.categories.keys())

    def category_tools(self, key: str) -> List[ScoredTool]:
        return [t for t in self.flat_tools() if t.category_key == key]

    # ---- read-only projections ------------------------------------------

    def categories_summary(self) -> List[CategorySummary]:
        return [
            CategorySummary(id=key, name=cat.name, icon=cat.icon, tool_count=len(cat.tools))
            for key, cat in self._catalog.categories.items()
        ]

    def tools_by_category(self, key: str, free_only: bool = False) -> List[ScoredTool]:
        if key not in self._catalog.categories:
            raise InvalidCategory(f"unknown category: {key}")
        tools = self.category_tools(key)
        if free_only:
            tools = [t for t in tools if t.tool.pricing.free]
        return tools

    def tools_by_ids(self, ids: Iterable[str], free_only: bool = False) -> List[ScoredTool]:
        """Resolve ids in the given order; unknown ids are skipped."""
        found: List[ScoredTool] = []
        seen: Set[str] = set()
        for tool_id in ids:
            if tool_id in seen:
                continue
            entry = self.find_tool_by_id(tool_id)
            if entry is None:
                continue
            if free_only and not entry.tool.pricing.free:
                continue
            seen.add(tool_id)
            found.append(entry)
        return found

    # ---- mutation --------------------------------------------------------

    async def commit_tool(self, category_key: str, tool: Tool) -> Catalog:
        """Append *tool* to *category_key* and persist the whole document."""
        async with self._lock:
            current = self._catalog
            if category_key not in current.categories:
                raise InvalidCategory(f"category {category_key!r} does not exist")
            keys = self.existing_keys()
            if tool.id in keys or tool.name.lower() in keys:
                raise DuplicateEntity(f"tool {tool.id!r} already exists")

            updated = current.model_copy(deep=True)
            updated.categories[category_key].tools.append(tool.model_copy(deep=True))
            updated.metadata.total_tools = updated.count_tools()
            updated.metadata.last_updated = date.today().isoformat()
            try:
                updated = Catalog.model_validate(
                    updated.model_dump(mode="json", by_alias=True)
                )
            except ValidationError as exc:
                raise PersistenceFailure(f"catalog failed validation: {exc}") from exc

            self._write(updated)
            self.reload()
            logger.info("Added %s to %s (%d tools total)",
                        tool.id, category_key, self._catalog.metadata.total_tools)
            return self._catalog
