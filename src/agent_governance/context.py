"""
Deterministic inference of an agent's operating context.

The classifier maps the observable signals of a turn (error flag, recently used
tools, the user's intent and the previous context) onto one `AgentContext`.
Rules are evaluated in a fixed order and the first match wins: an error always
means `debug`, tool usage outranks intent keywords, and when nothing matches
the previous context is carried forward.
"""
from __future__ import annotations

from typing import Iterable, Sequence, Tuple

from .schemas import AgentContext, ContextSignals

DEFAULT_CONTEXT = AgentContext.CODE

ERROR_KEYWORDS: Tuple[str, ...] = ("error", "fail")

# Tool-name fragments, checked in this order.
TOOL_RULES: Sequence[Tuple[AgentContext, Tuple[str, ...]]] = (
    (AgentContext.DEPLOY, ("vercel", "deploy")),
    (AgentContext.DB, ("supabase", "querydata", "insertdata")),
    (AgentContext.DOCS, ("mcp", "querydocumentation")),
    (AgentContext.CODE, ("github", "read_file", "write_file")),
)

# Intent keywords, checked after tool usage.
INTENT_RULES: Sequence[Tuple[AgentContext, Tuple[str, ...]]] = (
    (AgentContext.PLANNING, ("design", "plan", "architect")),
    (AgentContext.DEPLOY, ("deploy", "production", "vercel")),
    (AgentContext.DB, ("database", "table", "sql", "supabase", "query")),
    (AgentContext.DOCS, ("doc", "read", "learn")),
    (AgentContext.DEBUG, ("debug", "fix", "bug", "broken")),
)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def infer_context(signals: ContextSignals | None = None) -> AgentContext:
    """
    Infer the current operating context from the signals of a turn.

    Args:
        signals: The turn's observable signals. `None` is treated as an empty
            set of signals.

    Returns:
        The inferred context. Never raises.
    """
    if signals is None:
        signals = ContextSignals()

    intent = (signals.user_intent or "").lower()
    if signals.error or _contains_any(intent, ERROR_KEYWORDS):
        return AgentContext.DEBUG

    tools = [name.lower() for name in signals.tools_used if name]
    for context, fragments in TOOL_RULES:
        if any(_contains_any(tool, fragments) for tool in tools):
            return context

    for context, keywords in INTENT_RULES:
        if _contains_any(intent, keywords):
            return context

    return signals.last_context or DEFAULT_CONTEXT


__all__ = ["DEFAULT_CONTEXT", "infer_context"]
