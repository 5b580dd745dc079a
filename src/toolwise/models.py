"""
Data models for Toolwise.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TOOL_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_.\-]*$")


class _CamelModel(BaseModel):
    """Base for records persisted with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


class Budget(str, Enum):
    """Willingness to pay for recommended tools."""

    FREE = "free"
    PREMIUM = "premium"


class ConversationState(str, Enum):
    """Per-turn conversation state, re-derived from history on every call."""

    CHATTING = "CHATTING"
    AWAITING_BUDGET = "AWAITING_BUDGET"
    DONE = "DONE"


class ReplyType(str, Enum):
    """What the client should do with a conversation reply."""

    CHAT = "chat"
    ASK_BUDGET = "ask_budget"
    SHOW_TOOLS = "show_tools"


class DiscoveryErrorKind(str, Enum):
    """Categories of discovery and catalog errors."""

    EXTERNAL_SERVICE_UNAVAILABLE = "external_service_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    DUPLICATE_ENTITY = "duplicate_entity"
    INVALID_CATEGORY = "invalid_category"
    NOT_AN_AI_TOOL = "not_an_ai_tool"
    PERSISTENCE_FAILURE = "persistence_failure"


# ---------------------------------------------------------------------------
# Catalog document
# ---------------------------------------------------------------------------


class Pricing(_CamelModel):
    """Pricing information for a tool."""

    free: bool = Field(description="Whether a usable free tier exists")
    premium: Optional[str] = Field(None, description="Paid plan description")

    @model_validator(mode="after")
    def _premium_required_when_paid(self) -> "Pricing":
        if not self.free and not (self.premium or "").strip():
            raise ValueError("paid-only tools must describe their premium plan")
        return self


class DeployInfo(_CamelModel):
    """Whether the tool can deploy what it builds."""

    available: bool = Field(default=False, description="Deploy supported")
    type: str = Field(default="N/A", description="Free/Paid/N/A")
    note: str = Field(default="", description="Short deploy note")


class Tool(_CamelModel):
    """A single catalog entry."""

    id: str = Field(description="Catalog-wide unique lowercase token")
    name: str = Field(description="Display name")
    best_for: str = Field(alias="bestFor", description="One-line use case")
    why_suits_you: str = Field(
        default="", alias="whySuitsYou", description="Why a user would want it"
    )
    limits: str = Field(default="", description="Free tier limits")
    pricing: Pricing = Field(description="Pricing information")
    ease: int = Field(default=3, ge=1, le=5, description="1-5, 5 = easiest")
    url: str = Field(default="", description="Homepage URL")
    accepts_prompt: bool = Field(
        default=False, alias="acceptsPrompt", description="Takes a text prompt"
    )
    prompt_hint: Optional[str] = Field(
        None, alias="promptHint", description="What kind of prompt to write"
    )
    deploy: Optional[DeployInfo] = Field(None, description="Deploy details")

    @field_validator("id")
    @classmethod
    def _lowercase_token(cls, value: str) -> str:
        if not _TOOL_ID_RE.match(value):
            raise ValueError(f"tool id must be a lowercase token: {value!r}")
        return value

    @field_validator("ease", mode="before")
    @classmethod
    def _default_ease(cls, value):
        return 3 if value is None else value


class Category(_CamelModel):
    """A category of tools."""

    name: str = Field(description="Display name")
    icon: str = Field(default="", description="Display icon")
    keywords: List[str] = Field(default_factory=list, description="Search keywords")
    tools: List[Tool] = Field(default_factory=list, description="Ordered tools")


class CatalogMetadata(_CamelModel):
    """Derived catalog metadata, recomputed on every write."""

    total_tools: int = Field(default=0, alias="totalTools")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")


class Catalog(_CamelModel):
    """The persisted catalog document."""

    categories: Dict[str, Category] = Field(default_factory=dict)
    metadata: CatalogMetadata = Field(default_factory=CatalogMetadata)

    def count_tools(self) -> int:
        return sum(len(cat.tools) for cat in self.categories.values())

    def duplicate_ids(self) -> List[str]:
        """Return tool ids that appear more than once across categories."""
        seen: set = set()
        dupes: List[str] = []
        for cat in self.categories.values():
            for tool in cat.tools:
                if tool.id in seen:
                    dupes.append(tool.id)
                seen.add(tool.id)
        return dupes


class CategorySummary(BaseModel):
    """Read-only projection of a category for listings."""

    id: str
    name: str
    icon: str
    tool_count: int = Field(serialization_alias="toolCount")


class ScoredTool(_CamelModel):
    """A tool flattened with the category it lives in."""

    tool: Tool
    category_key: str = Field(alias="categoryKey")
    category_name: str = Field(alias="categoryName")
    category_icon: str = Field(default="", alias="categoryIcon")
    category_keywords: List[str] = Field(default_factory=list, alias="categoryKeywords")
    search_text: str = Field(default="", alias="searchText")

    @property
    def id(self) -> str:
        return self.tool.id

    @property
    def name(self) -> str:
        return self.tool.name

    def to_payload(self) -> Dict[str, object]:
        """Tool fields plus category display data, for callers."""
        payload = self.tool.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload["category"] = self.category_name
        payload["categoryKey"] = self.category_key
        payload["categoryIcon"] = self.category_icon
        return payload


# ---------------------------------------------------------------------------
# Intent matching
# ---------------------------------------------------------------------------


class IntentPattern(BaseModel):
    """Maps user phrasing to one or more categories and priority tools."""

    intents: List[str] = Field(description="Lowercase trigger phrases")
    categories: List[str] = Field(description="Category keys, primary first")
    context: str = Field(default="", description="Context text for prompts")
    priority: List[str] = Field(default_factory=list, description="Priority tool ids")

    @property
    def category(self) -> str:
        return self.categories[0]

    @field_validator("intents")
    @classmethod
    def _lowercase_intents(cls, value: List[str]) -> List[str]:
        return [v.lower().strip() for v in value if v.strip()]

    @field_validator("categories")
    @classmethod
    def _at_least_one_category(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("intent pattern needs at least one category")
        return value


class IntentMatch(BaseModel):
    """Result of analysing a free-text query."""

    matched: bool
    category: Optional[str] = None
    context: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    tools: List[ScoredTool] = Field(default_factory=list)
    is_guidance: bool = False


class FollowUp(BaseModel):
    """A suggested next request."""

    text: str
    message: str


class Recommendation(BaseModel):
    """Ranked, budget-filtered recommendation."""

    success: bool = True
    source: str = Field(description="Which strategy produced the result")
    category: Optional[str] = None
    reasoning: str = ""
    tools: List[ScoredTool] = Field(default_factory=list)
    follow_ups: List[FollowUp] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "source": self.source,
            "category": self.category,
            "reasoning": self.reasoning,
            "tools": [t.to_payload() for t in self.tools],
            "followUps": [f.model_dump() for f in self.follow_ups],
        }


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """One conversation turn carried by the client."""

    role: str = Field(description="user or assistant")
    content: str = Field(default="")

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        return "user" if value == "user" else "assistant"


class ConversationReply(BaseModel):
    """Decision for a single conversation turn."""

    state: ConversationState
    type: ReplyType
    response: str = ""
    budget: Optional[Budget] = None
    original_query: Optional[str] = None
    tool_ids: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    source: str = Field(default="rules", description="ai:<provider> or rules")
    recommendation: Optional[Recommendation] = None

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "success": True,
            "state": self.state.value,
            "type": self.type.value,
            "response": self.response,
            "source": self.source,
        }
        if self.budget is not None:
            payload["budget"] = self.budget.value
        if self.original_query is not None:
            payload["originalQuery"] = self.original_query
        if self.tool_ids:
            payload["toolIds"] = self.tool_ids
        if self.category is not None:
            payload["category"] = self.category
        if self.recommendation is not None:
            payload["recommendation"] = self.recommendation.to_payload()
        return payload


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class PageHints(BaseModel):
    """Structured hints extracted from a tool's public page."""

    url: str
    name: Optional[str] = None
    title: str = ""
    description: str = ""
    headline: str = ""
    subheadlines: List[str] = Field(default_factory=list)
    pricing_hints: str = ""
    raw_snippet: str = ""
    source: Optional[str] = None

    def guessed_name(self) -> str:
        """Tool name guessed from the page title ("Foo - AI for bar" -> "foo")."""
        base = self.name or re.split(r"[-–|]", self.title or "")[0]
        return base.strip().lower()


class ClassifiedTool(_CamelModel):
    """Structured catalog entry proposed by a classifier."""

    is_ai_tool: bool = Field(alias="isAITool")
    category: str
    id: str
    name: str
    best_for: str = Field(default="AI tool", alias="bestFor")
    why_suits_you: str = Field(default="", alias="whySuitsYou")
    limits: str = Field(default="Check website for free tier details")
    pricing: Pricing = Field(default_factory=lambda: Pricing(free=True))
    ease: int = Field(default=3)
    url: str = Field(default="")
    accepts_prompt: bool = Field(default=False, alias="acceptsPrompt")
    prompt_hint: Optional[str] = Field(None, alias="promptHint")
    deploy: Optional[DeployInfo] = None

    @field_validator("ease", mode="before")
    @classmethod
    def _clamp_ease(cls, value) -> int:
        try:
            return min(5, max(1, int(value)))
        except (TypeError, ValueError):
            return 3

    def to_tool(self) -> Tool:
        """Catalog entry without the classification-only fields."""
        hint = None
        if self.accepts_prompt:
            hint = self.prompt_hint or "Describe what you want to create"
        return Tool(
            id=self.id,
            name=self.name,
            best_for=self.best_for,
            why_suits_you=self.why_suits_you,
            limits=self.limits,
            pricing=self.pricing,
            ease=self.ease,
            url=self.url,
            accepts_prompt=self.accepts_prompt,
            prompt_hint=hint,
            deploy=self.deploy,
        )


class DiscoveryRecord(_CamelModel):
    """Audit entry for a tool admitted by discovery."""

    tool_id: str = Field(alias="toolId")
    name: str
    category: str
    discovered_at: datetime = Field(alias="discoveredAt")
    source_url: str = Field(default="", alias="sourceUrl")


class DiscoveryLogState(_CamelModel):
    """Persisted discovery log document."""

    tools: List[DiscoveryRecord] = Field(default_factory=list)
    last_scrape: Optional[datetime] = Field(None, alias="lastScrape")
    total_discovered: int = Field(default=0, alias="totalDiscovered")


class DiscoveryResult(BaseModel):
    """Outcome of discovering a single candidate."""

    success: bool
    tool: Optional[Tool] = None
    category: Optional[str] = None
    error: Optional[DiscoveryErrorKind] = None
    message: str = ""

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"success": self.success}
        if self.tool is not None:
            payload["tool"] = self.tool.model_dump(mode="json", by_alias=True, exclude_none=True)
            payload["category"] = self.category
        if self.error is not None:
            payload["error"] = self.error.value
        if self.message:
            payload["message"] = self.message
        return payload


class ScrapeSummary(BaseModel):
    """Counters for a batch discovery run."""

    discovered: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0


class CatalogStats(_CamelModel):
    """Catalog and discovery statistics."""

    total_tools: int = Field(alias="totalTools")
    categories: int
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    total_discovered: int = Field(alias="totalDiscovered")
    last_scrape: Optional[datetime] = Field(None, alias="lastScrape")
