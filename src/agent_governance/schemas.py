"""
This module defines the Pydantic data models exchanged between the governance
engine and the agent runtime that embeds it.

The models describe graph nodes, weighted transitions, the signals used to
classify an agent's operating context, and the results of a governance run.
They are the single source of truth for the shapes the service accepts and
returns, so callers never handle raw `sqlite3.Row` objects.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


class NodeKind(str, Enum):
    """
    Enumeration for what a graph node stands for.

    Attributes:
        TOOL: A tool the agent can invoke.
        MEMORY: A long-term memory item.
        INPUT: A user input.
    """
    TOOL = "tool"
    MEMORY = "memory"
    INPUT = "input"


class AgentContext(str, Enum):
    """
    The discrete operating contexts an agent turn can be classified into.
    """
    CODE = "code"
    DEBUG = "debug"
    DEPLOY = "deploy"
    DB = "db"
    DOCS = "docs"
    PLANNING = "planning"


class ContextSignals(BaseModel):
    """
    Observable signals of the current agent turn, used to infer its context.

    Every field is optional so the classifier can be called with whatever the
    runtime happens to know.
    """

    model_config = ConfigDict(extra="ignore")

    tools_used: List[str] = Field(default_factory=list, description="Recently invoked tool names")
    error: bool = Field(default=False, description="Whether the turn produced an error")
    user_intent: str = Field(default="", description="Free-text user request")
    last_context: Optional[AgentContext] = Field(default=None, description="Context of the previous turn")


class NodeRecord(BaseModel):
    """
    Represents a node as maintained by the registry.
    """

    node_id: str = Field(..., min_length=1)
    kind: NodeKind = NodeKind.TOOL
    rank_score: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Transition(BaseModel):
    """
    A weighted directed observation that `to_node` was used after `from_node`.
    """

    from_node: str
    to_node: str
    weight: int = Field(default=1, ge=0)


class ScopeInfo(BaseModel):
    """
    Governance metadata for a single scope (the global graph or one context).
    """

    scope: str
    damping_factor: Optional[float] = None
    last_run: Optional[datetime] = None
    transition_count: int = Field(default=0, ge=0)


class GovernanceRunResult(BaseModel):
    """
    Summary of one governance cycle over one scope.
    """

    scope: str
    damping_factor: float
    iterations: int
    node_count: int
    transition_count: int
    scores: Dict[str, float] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=_utc_now)


class RankedNode(BaseModel):
    """
    A node paired with its score in a given scope, used for prioritization.
    """

    node_id: str
    kind: NodeKind
    score: float
    scope: str


class GovernanceStats(BaseModel):
    """
    Aggregate statistics about the transition graph and its governance runs.
    """

    total_nodes: int = Field(..., ge=0)
    total_transitions: int = Field(..., ge=0)
    scopes: List[ScopeInfo] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utc_now)


__all__ = [
    "NodeKind",
    "AgentContext",
    "ContextSignals",
    "NodeRecord",
    "Transition",
    "ScopeInfo",
    "GovernanceRunResult",
    "RankedNode",
    "GovernanceStats",
]
