"""
Tool governance for LLM-driven agents.

The package keeps a weighted graph of which tool was used after which, both
globally and per operating context, and ranks its nodes with PageRank so the
agent runtime can bias tool selection toward historically useful actions.
"""
from .config import GLOBAL_SCOPE, GovernanceSettings
from .context import infer_context
from .database import Database
from .errors import ConfigurationError, GovernanceError, NotFoundError, PersistenceError
from .pagerank import compute_pagerank
from .scheduler import GovernanceScheduler
from .schemas import (
    AgentContext,
    ContextSignals,
    GovernanceRunResult,
    GovernanceStats,
    NodeKind,
    NodeRecord,
    RankedNode,
    ScopeInfo,
    Transition,
)
from .service import GovernanceService
from .tracker import ToolTransitionTracker

__all__ = [
    "GLOBAL_SCOPE",
    "GovernanceSettings",
    "infer_context",
    "Database",
    "GovernanceError",
    "ConfigurationError",
    "NotFoundError",
    "PersistenceError",
    "compute_pagerank",
    "GovernanceScheduler",
    "AgentContext",
    "ContextSignals",
    "GovernanceRunResult",
    "GovernanceStats",
    "NodeKind",
    "NodeRecord",
    "RankedNode",
    "ScopeInfo",
    "Transition",
    "GovernanceService",
    "ToolTransitionTracker",
]

__version__ = "0.1.0"
