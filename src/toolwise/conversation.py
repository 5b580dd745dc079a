"""
Conversation policy.

Decides, per turn, whether to keep chatting, ask the budget question or show
tools.  The server is stateless: the state is re-derived on every call from
the last ``HISTORY_WINDOW`` history entries carried by the client.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple, Union

from .completion import CompletionProvider, parse_json_object
from .errors import MalformedResponse
from .intent import IntentMatcher
from .models import (
    Budget,
    ChatMessage,
    ConversationReply,
    ConversationState,
    Recommendation,
    ReplyType,
)
from .recommendation import MAX_RECOMMENDED, Orchestrator, coerce_budget

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 8

BUDGET_QUESTION = "Would you prefer free tools or are you open to premium options?"
SHOW_TOOLS_MESSAGE = "Here are the best tools for you!"

# ---------------------------------------------------------------------------
# Budget and intent tables
# ---------------------------------------------------------------------------

# Whole-message answers to the budget question, after punctuation is stripped.
BUDGET_ANSWERS = {
    Budget.FREE: {
        "free", "free please", "free ones", "free tools", "free only", "only free",
        "free is fine", "free options", "free one", "no budget", "zero budget",
        "nothing paid", "no money", "free pls",
    },
    Budget.PREMIUM: {
        "premium", "premium please", "premium ones", "premium tools", "premium is fine",
        "paid", "paid ones", "paid is fine", "pro", "i can pay", "open to premium",
        "any budget", "money is no issue", "best ones", "premium options",
    },
}

_FREE_PREFERENCE_RE = re.compile(r"\bfree\b|\bno budget\b|\bwithout paying\b|\bno cost\b")
_PREMIUM_PREFERENCE_RE = re.compile(r"\bpremium\b|\bpaid\b|\bany budget\b|\bi can pay\b")

_TOOL_REQUEST_RE = re.compile(
    r"i want to|i need|i'd like to|help me|looking for|recommend|suggest|"
    r"\b(?:build|create|make|design|generate|edit|write|produce)\b"
)
_TOOL_DOMAIN_RE = re.compile(
    r"\b(?:apps?|websites?|cod(?:e|ing)|program\w*|software|videos?|images?|photos?|"
    r"design\w*|logos?|presentations?|slides?|music|audio|voices?|writ\w*|blogs?|"
    r"articles?|posters?|resumes?)\b"
)
_SOLICITS_PREFERENCE_RE = re.compile(r"prefer|would you like|open to|which (?:do|would) you|do you want")

_FOLLOW_UP_RE = re.compile(r"^(?:is it|is that|does it|can it)\b")
_GREETING_RE = re.compile(r"^(?:hi+|hello|hey|hola|yo|greetings|sup|what's up)\b")
_HOW_ARE_YOU_RE = re.compile(r"how are you|how's it going|what's new|how do you do")
_THANKS_RE = re.compile(r"thank|thx|appreciate")
_IDENTITY_RE = re.compile(
    r"who are you|what are you|what can you do|how do you work|what is toolwise"
)

# Answers to "is it free?" about a tool mentioned in the previous turn.
TOOL_PRICING_INFO: Tuple[Tuple[str, str], ...] = (
    ("canva", "Yes! Canva has a generous free tier. Pro adds more templates and features for $12.99/month."),
    ("midjourney", "No, Midjourney is paid only. Plans start at $10/month for the Basic tier."),
    ("chatgpt", "Yes! ChatGPT has a free tier. The strongest models need ChatGPT Plus at $20/month."),
    ("figma", "Yes! Figma has a free tier for up to 3 design files. Professional plans start at $12/month."),
    ("bolt", "Bolt has a free tier with a daily token allowance. Heavier use needs a subscription."),
    ("lovable", "Lovable offers a free plan with a few messages a day. Full access requires a subscription."),
    ("runway", "Runway has a limited free tier. Pro features need a subscription starting at $15/month."),
)

TOOL_ANSWERS: Tuple[Tuple[str, str], ...] = (
    ("canva", "Canva is a design platform for graphics, presentations and social posts. It has a generous free tier and Pro is $12.99/month. Want me to recommend similar tools?"),
    ("midjourney", "Midjourney is one of the best AI image generators, known for artistic results. It's paid only, from $10/month. Want me to suggest free alternatives?"),
    ("chatgpt", "ChatGPT is OpenAI's conversational assistant. The free tier covers everyday use and Plus is $20/month. What do you want to use it for?"),
    ("figma", "Figma is a design and prototyping tool, great for UI/UX work and collaboration. It has a free tier for up to 3 files. Are you into design?"),
    ("bolt", "Bolt is an AI app builder that writes and runs code from your description. It has a free tier. Want to build an app?"),
    ("runway", "Runway is great for AI video generation and editing. There's a limited free tier. Interested in video creation?"),
)

GREETING_REPLY = "Hey there! I'm Toolwise. I know a lot of AI tools inside-out. What are you working on today?"
HOW_ARE_YOU_REPLY = "I'm doing great, thanks for asking! Ready to help you find the right AI tool. What's on your mind?"
THANKS_REPLY = "You're welcome! Anything else you'd like to know about AI tools?"
IDENTITY_REPLY = (
    "I'm Toolwise! Think of me as a friend who knows tools like Canva, Midjourney, Bolt, "
    "Runway and many more. Tell me what you're building and I'll find the right tool."
)
TOOL_REQUEST_REPLY = f"Nice! I can help with that. {BUDGET_QUESTION}"
DEFAULT_REPLY = (
    "I'm here to help! I know a ton about AI tools, from image generators to app "
    "builders. What would you like to create?"
)


def _normalize(text: str) -> str:
    return re.sub(r"[^\w\s$']", "", text.lower()).strip()


def standalone_budget(message: str) -> Optional[Budget]:
    """Budget named by a message that is only a budget answer."""
    text = _normalize(message)
    for budget, answers in BUDGET_ANSWERS.items():
        if text in answers:
            return budget
    return None


def budget_preference(message: str) -> Optional[Budget]:
    """Budget mentioned anywhere in *message*; None when absent or contradictory."""
    text = message.lower()
    free = bool(_FREE_PREFERENCE_RE.search(text))
    premium = bool(_PREMIUM_PREFERENCE_RE.search(text))
    if free == premium:
        return None
    return Budget.FREE if free else Budget.PREMIUM


def has_tool_intent(message: str) -> bool:
    text = message.lower()
    return bool(_TOOL_REQUEST_RE.search(text) and _TOOL_DOMAIN_RE.search(text))


def asked_budget_question(text: str) -> bool:
    """True when an assistant turn offered the free-or-premium choice."""
    lowered = text.lower()
    return "free" in lowered and "premium" in lowered


def solicits_budget(text: str) -> bool:
    return asked_budget_question(text) and bool(_SOLICITS_PREFERENCE_RE.search(text.lower()))


def coerce_history(history: Optional[Sequence[Union[ChatMessage, dict]]]) -> List[ChatMessage]:
    """Validate client-carried history and keep the recent window."""
    messages = []
    for item in history or []:
        messages.append(item if isinstance(item, ChatMessage) else ChatMessage.model_validate(item))
    return messages[-HISTORY_WINDOW:]


class ConversationPolicy:
    """Per-turn decision layer over the orchestrator."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        matcher: IntentMatcher,
        providers: Optional[Sequence[CompletionProvider]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.matcher = matcher
        self.providers = list(providers or [])

    async def handle(
        self,
        message: str,
        history: Optional[Sequence[Union[ChatMessage, dict]]] = None,
    ) -> ConversationReply:
        turns = coerce_history(history)
        logger.info("Chat turn %r (history: %d messages)", message, len(turns))

        reply = self._budget_answer(message, turns)
        if reply is None:
            budget = budget_preference(message)
            if budget is not None and has_tool_intent(message):
                reply = ConversationReply(
                    state=ConversationState.DONE,
                    type=ReplyType.SHOW_TOOLS,
                    response=SHOW_TOOLS_MESSAGE,
                    budget=budget,
                    original_query=message,
                )
        if reply is None:
            reply = await self._ask_providers(message, turns)
        if reply is None:
            reply = self.rule_based_reply(message, turns)

        if reply.type == ReplyType.SHOW_TOOLS:
            reply.recommendation = await self._recommend(reply)
            reply.category = reply.recommendation.category
        return reply

    # ---- deterministic transitions ---------------------------------------

    @staticmethod
    def _budget_answer(message: str, turns: List[ChatMessage]) -> Optional[ConversationReply]:
        budget = standalone_budget(message)
        if budget is None:
            return None
        for idx in range(len(turns) - 1, -1, -1):
            if turns[idx].role != "assistant":
                continue
            if not asked_budget_question(turns[idx].content):
                return None
            original = next(
                (t.content for t in reversed(turns[:idx]) if t.role == "user"), None
            )
            return ConversationReply(
                state=ConversationState.DONE,
                type=ReplyType.SHOW_TOOLS,
                response=SHOW_TOOLS_MESSAGE,
                budget=budget,
                original_query=original or message,
            )
        return None

    # ---- AI providers ----------------------------------------------------

    def system_prompt(self) -> str:
        catalog = self.orchestrator.store.catalog
        tool_lines = "\n".join(
            f"- {cat.name}: {', '.join(t.id for t in cat.tools)}"
            for cat in catalog.categories.values() if cat.tools
        )
        mapping_lines = "\n".join(
            f"{', '.join(repr(i) for i in p.intents[:4])} -> {', '.join(p.categories)} "
            f"({', '.join(p.priority)})"
            for p in self.matcher.patterns
        )
        return (
            "You are Toolwise, an assistant that helps users find the right AI tools.\n\n"
            "YOUR TOOL KNOWLEDGE (use these exact ids when recommending):\n"
            f"{tool_lines}\n\n"
            "INTENT MAPPING (user says -> category (best ids)):\n"
            f"{mapping_lines}\n\n"
            "Recommend all tools from the same primary category unless the request "
            "explicitly mentions two different tasks.\n\n"
            "RESPONSE FORMAT (JSON only):\n"
            '{"action": "chat" | "show_tools", "message": "your reply", '
            '"budget": "free" | "premium" | null, "tools": ["id1", "id2", "id3"] | null}\n\n'
            "DECISION RULES:\n"
            "- Just chatting: action chat, tools null\n"
            f'- Wants something, no budget mentioned: action chat, ask "{BUDGET_QUESTION}"\n'
            "- Wants something and budget known: action show_tools with the best 3 ids\n\n"
            "Be warm and concise (2-3 sentences). Return only valid JSON."
        )

    async def _ask_providers(
        self, message: str, turns: List[ChatMessage]
    ) -> Optional[ConversationReply]:
        if not self.providers:
            return None
        messages = [{"role": "system", "content": self.system_prompt()}]
        messages.extend({"role": t.role, "content": t.content} for t in turns)
        messages.append({"role": "user", "content": message})

        for provider in self.providers:
            try:
                text = await provider.complete(
                    messages, temperature=0.7, max_tokens=500, json_mode=True
                )
            except Exception as exc:
                logger.warning("Conversation provider %s failed: %s", provider.name, exc)
                continue
            return self._interpret(text, message, turns, source=f"ai:{provider.name}")
        return None

    def _interpret(
        self, text: str, message: str, turns: List[ChatMessage], source: str
    ) -> ConversationReply:
        try:
            data = parse_json_object(text)
        except MalformedResponse:
            logger.debug("%s replied with plain text; treating it as chat", source)
            data = {"action": "chat", "message": text}

        response = str(data.get("message") or "").strip()
        tools = data.get("tools")
        if data.get("action") == "show_tools" and data.get("budget") and isinstance(tools, list):
            original = message
            if standalone_budget(message) is not None:
                original = next(
                    (t.content for t in reversed(turns) if t.role == "user"), message
                )
            return ConversationReply(
                state=ConversationState.DONE,
                type=ReplyType.SHOW_TOOLS,
                response=response or SHOW_TOOLS_MESSAGE,
                budget=coerce_budget(data.get("budget")),
                original_query=original,
                tool_ids=[str(t) for t in tools],
                source=source,
            )

        response = response or DEFAULT_REPLY
        if solicits_budget(response):
            return ConversationReply(
                state=ConversationState.AWAITING_BUDGET,
                type=ReplyType.ASK_BUDGET,
                response=response,
                source=source,
            )
        return ConversationReply(
            state=ConversationState.CHATTING,
            type=ReplyType.CHAT,
            response=response,
            source=source,
        )

    # ---- rule-based responder --------------------------------------------

    @staticmethod
    def rule_based_reply(message: str, turns: Sequence[ChatMessage]) -> ConversationReply:
        """Deterministic responder used when no provider answers."""
        text = message.lower().strip()

        def chat(response: str) -> ConversationReply:
            return ConversationReply(
                state=ConversationState.CHATTING, type=ReplyType.CHAT, response=response
            )

        if _FOLLOW_UP_RE.search(text):
            last_assistant = next((t for t in reversed(turns) if t.role == "assistant"), None)
            last_user = next((t for t in reversed(turns) if t.role == "user"), None)
            context = ((last_assistant or last_user).content.lower()
                       if (last_assistant or last_user) else "")
            for key, info in TOOL_PRICING_INFO:
                if key in context:
                    return chat(info)

        wants_tool = has_tool_intent(text)
        if _GREETING_RE.search(text) and not wants_tool:
            return chat(GREETING_REPLY)
        if _HOW_ARE_YOU_RE.search(text):
            return chat(HOW_ARE_YOU_REPLY)
        if _THANKS_RE.search(text):
            return chat(THANKS_REPLY)
        if _IDENTITY_RE.search(text):
            return chat(IDENTITY_REPLY)

        for key, answer in TOOL_ANSWERS:
            if key in text:
                return chat(answer)

        if wants_tool:
            return ConversationReply(
                state=ConversationState.AWAITING_BUDGET,
                type=ReplyType.ASK_BUDGET,
                response=TOOL_REQUEST_REPLY,
            )
        return chat(DEFAULT_REPLY)

    # ---- show_tools ------------------------------------------------------

    async def _recommend(self, reply: ConversationReply) -> Recommendation:
        budget = reply.budget or Budget.FREE
        query = reply.original_query or ""
        if reply.tool_ids:
            tools = self.orchestrator.tools_by_ids(reply.tool_ids, budget)[:MAX_RECOMMENDED]
            if tools:
                category = tools[0].category_key
                return Recommendation(
                    source=reply.source,
                    category=category,
                    reasoning=reply.response,
                    tools=tools,
                    follow_ups=self.matcher.follow_up_suggestions(category),
                )
            logger.info("None of the AI-picked tools survived; falling back to the chain")
        return await self.orchestrator.get_recommendations(query, budget)
