"""
This module encapsulates the core business logic of the governance engine.

The `GovernanceService` class is the single object the agent runtime and the
scheduler share. The live agent loop uses it to register nodes and record
transitions between consecutively used tools; the scheduler uses it to
recompute PageRank scores per scope and persist them. Keeping these operations
on one explicitly constructed service (rather than a module-level client) lets
each caller receive the same database handle and settings by injection.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from .config import GLOBAL_SCOPE, GovernanceSettings
from .database import Database
from .errors import ConfigurationError, GovernanceError, NotFoundError, PersistenceError
from .pagerank import compute_pagerank
from .schemas import (
    AgentContext,
    GovernanceRunResult,
    GovernanceStats,
    NodeKind,
    NodeRecord,
    RankedNode,
    ScopeInfo,
    Transition,
)

LOGGER = logging.getLogger(__name__)

ScopeLike = Union[str, AgentContext]


def _scope_name(scope: ScopeLike) -> str:
    if isinstance(scope, Enum):
        return str(scope.value)
    return scope


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class GovernanceService:
    """
    Provides node registration, transition recording and rank governance.

    Attributes:
        db: An instance of the `Database` class for data access.
        live_db: The same database with I/O bounded by `record_timeout_seconds`,
            used by node registration and transition recording.
        settings: An instance of `GovernanceSettings` for configuration.
    """

    def __init__(self, db: Database, settings: GovernanceSettings):
        """
        Initializes the GovernanceService.

        Args:
            db: The database access layer.
            settings: The engine configuration settings.
        """
        self.db = db
        self.settings = settings
        self.live_db = db.bounded(timeout=settings.record_timeout_seconds, retry_attempts=1)

    @classmethod
    def from_settings(cls, settings: Optional[GovernanceSettings] = None) -> "GovernanceService":
        """
        Builds a service with its own database handle and initializes the schema.
        """
        settings = settings or GovernanceSettings()
        db = Database(
            settings.database_path,
            timeout=settings.storage_timeout_seconds,
            retry_attempts=settings.storage_retry_attempts,
            retry_delay=settings.storage_retry_delay_seconds,
        )
        db.init_schema(settings.contexts, global_scope=GLOBAL_SCOPE)
        return cls(db=db, settings=settings)

    # ------------------------------------------------------------------ nodes

    def ensure_node(
        self,
        node_id: str,
        kind: NodeKind = NodeKind.TOOL,
        initial_score: Optional[float] = None,
    ) -> None:
        """
        Registers a node unless it already exists.

        An existing node keeps its current score. Concurrent calls for the same
        id create exactly one node.

        Args:
            node_id: Stable identifier of the node.
            kind: What the node represents.
            initial_score: Raw score for a new node; defaults to the configured
                initial score.

        Raises:
            PersistenceError: If storage fails within the `record_timeout_seconds` bound.
        """
        score = self.settings.initial_score if initial_score is None else initial_score
        created = self.live_db.insert_node_if_absent(
            node_id=node_id,
            kind=NodeKind(kind).value,
            initial_score=score,
            now=datetime.now(timezone.utc),
        )
        if created:
            LOGGER.info("Registered %s node %s (score=%.3f)", NodeKind(kind).value, node_id, score)

    def _row_to_node(self, row) -> NodeRecord:
        return NodeRecord(
            node_id=row["node_id"],
            kind=NodeKind(row["kind"]),
            rank_score=row["rank_score"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def get_node(self, node_id: str) -> NodeRecord:
        """
        Retrieves a single node by its id.

        Raises:
            NotFoundError: If the node was never registered.
        """
        row = self.db.fetch_node(node_id=node_id)
        if not row:
            raise NotFoundError(node_id)
        return self._row_to_node(row)

    def list_nodes(self) -> List[NodeRecord]:
        return [self._row_to_node(r) for r in self.db.fetch_nodes()]

    # ------------------------------------------------------------ transitions

    def record_transition(
        self,
        from_id: str,
        to_id: str,
        context: Optional[ScopeLike] = None,
    ) -> None:
        """
        Records that `to_id` was used right after `from_id`.

        The global transition is always incremented; when a context is given
        the context-scoped transition is incremented independently. Missing
        endpoints are skipped without creating nodes. This method never raises:
        storage failures are logged so they cannot disrupt the agent's reply.

        Args:
            from_id: The previously used node.
            to_id: The node used now.
            context: Optional context scope for the transition.
        """
        try:
            context_name = _scope_name(context) if context is not None else GLOBAL_SCOPE
            if context_name != GLOBAL_SCOPE:
                if not self.live_db.scope_exists(scope=context_name):
                    LOGGER.warning(
                        "Unknown context %r; recording %s -> %s globally only",
                        context_name,
                        from_id,
                        to_id,
                    )
                elif not self.live_db.increment_transition(from_node=from_id, to_node=to_id, scope=context_name):
                    LOGGER.debug("Skipping transition %s -> %s: endpoint not registered", from_id, to_id)
                    return

            if not self.live_db.increment_transition(from_node=from_id, to_node=to_id, scope=GLOBAL_SCOPE):
                LOGGER.debug("Skipping transition %s -> %s: endpoint not registered", from_id, to_id)
        except GovernanceError as exc:
            LOGGER.warning("Failed to record transition %s -> %s: %s", from_id, to_id, exc)
        except Exception:  # noqa: BLE001 - recording is best-effort
            LOGGER.exception("Unexpected error recording transition %s -> %s", from_id, to_id)

    async def arecord_transition(
        self,
        from_id: str,
        to_id: str,
        context: Optional[ScopeLike] = None,
    ) -> None:
        """
        Records a transition off the event loop, waiting at most
        `record_timeout_seconds` for it to finish.
        """
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.record_transition, from_id, to_id, context),
                timeout=self.settings.record_timeout_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Recording transition %s -> %s exceeded %.2fs; continuing",
                from_id,
                to_id,
                self.settings.record_timeout_seconds,
            )

    def transition_weight(self, from_id: str, to_id: str, scope: ScopeLike = GLOBAL_SCOPE) -> int:
        return self.db.fetch_weight(from_node=from_id, to_node=to_id, scope=_scope_name(scope))

    # ------------------------------------------------------------- governance

    def _require_scope(self, scope: str) -> None:
        if not self.db.scope_exists(scope=scope):
            raise ConfigurationError(f"Unknown governance scope {scope!r}", scope=scope)

    def run_governance(self, scope: ScopeLike = GLOBAL_SCOPE) -> Optional[GovernanceRunResult]:
        """
        Recomputes PageRank scores for one scope and persists them.

        Global runs overwrite each node's `rank_score`; context runs write
        context rank records and leave global scores untouched. Nothing is
        written unless loading and ranking both succeed.

        Args:
            scope: `"global"` or a context name.

        Returns:
            The run summary, or None when there are no nodes to rank.

        Raises:
            ConfigurationError: If the scope is unknown.
            PersistenceError: If storage fails after retries.
        """
        scope_name = _scope_name(scope)
        try:
            rows = self.db.fetch_nodes()
            if not rows:
                LOGGER.info("Governance for %s skipped: no nodes registered", scope_name)
                return None

            self._require_scope(scope_name)
            transitions = [
                Transition(from_node=r["from_node"], to_node=r["to_node"], weight=r["weight"])
                for r in self.db.fetch_transitions(scope=scope_name)
            ]
            damping = self.db.fetch_damping(scope=scope_name)
            if damping is None:
                damping = self.settings.default_damping

            node_ids = [r["node_id"] for r in rows]
            scores = compute_pagerank(node_ids, transitions, damping, self.settings.iterations)

            now = datetime.now(timezone.utc)
            if scope_name == GLOBAL_SCOPE:
                self.db.write_global_ranks(scores=scores, scope=scope_name, at=now)
            else:
                self.db.write_context_ranks(context=scope_name, scores=scores, at=now)
        except (ConfigurationError, PersistenceError):
            LOGGER.error("Governance run for %s aborted", scope_name, exc_info=True)
            raise

        LOGGER.info(
            "PageRank updated for %s (nodes=%d, transitions=%d, damping=%.2f)",
            scope_name,
            len(node_ids),
            len(transitions),
            damping,
        )
        return GovernanceRunResult(
            scope=scope_name,
            damping_factor=damping,
            iterations=self.settings.iterations,
            node_count=len(node_ids),
            transition_count=len(transitions),
            scores=scores,
            completed_at=now,
        )

    def run_all(self) -> Dict[str, Optional[GovernanceRunResult]]:
        """
        Runs governance for the global scope and then every context.

        A failing scope is logged and skipped so the remaining scopes still run.

        Returns:
            A mapping of scope name to run result. Failed scopes are absent;
            scopes with nothing to rank map to None.
        """
        results: Dict[str, Optional[GovernanceRunResult]] = {}
        for scope in [GLOBAL_SCOPE, *self.list_contexts()]:
            try:
                results[scope] = self.run_governance(scope)
            except GovernanceError as exc:
                LOGGER.warning("Skipping scope %s after governance failure: %s", scope, exc)
        return results

    # ---------------------------------------------------------------- queries

    def list_contexts(self) -> List[str]:
        return [r["scope"] for r in self.db.fetch_scopes() if r["scope"] != GLOBAL_SCOPE]

    def ranked_nodes(
        self,
        scope: ScopeLike = GLOBAL_SCOPE,
        *,
        kind: Optional[NodeKind] = None,
        limit: Optional[int] = None,
    ) -> List[RankedNode]:
        """
        Lists nodes by descending score within a scope.

        For a context scope, nodes that have not been ranked in that context
        fall back to their global score.

        Raises:
            ConfigurationError: If the scope is unknown.
        """
        scope_name = _scope_name(scope)
        self._require_scope(scope_name)
        rows = self.db.fetch_ranked(
            context=None if scope_name == GLOBAL_SCOPE else scope_name,
            kind=NodeKind(kind).value if kind is not None else None,
            limit=limit,
        )
        return [
            RankedNode(node_id=r["node_id"], kind=NodeKind(r["kind"]), score=r["score"], scope=scope_name)
            for r in rows
        ]

    def context_scores(self, context: ScopeLike) -> Dict[str, float]:
        """Returns the persisted context-scoped scores, keyed by node id."""
        context_name = _scope_name(context)
        self._require_scope(context_name)
        return {r["node_id"]: r["rank_score"] for r in self.db.fetch_context_ranks(context=context_name)}

    def set_damping(self, scope: ScopeLike, damping: Optional[float]) -> None:
        """
        Sets the damping factor of a scope. `None` restores the default.

        Raises:
            ConfigurationError: If the scope is unknown or the value is not in
                the open interval (0, 1).
        """
        scope_name = _scope_name(scope)
        if damping is not None and not 0.0 < damping < 1.0:
            raise ConfigurationError(f"Damping factor must lie in (0, 1), got {damping}", scope=scope_name)
        if not self.db.set_damping(scope=scope_name, damping=damping):
            raise ConfigurationError(f"Unknown governance scope {scope_name!r}", scope=scope_name)

    def stats(self) -> GovernanceStats:
        """
        Summarizes the graph and the state of every scope.
        """
        scopes = [
            ScopeInfo(
                scope=r["scope"],
                damping_factor=r["damping_factor"],
                last_run=_parse_ts(r["last_run"]),
                transition_count=r["transition_count"],
            )
            for r in self.db.fetch_scopes()
        ]
        total_transitions = next((s.transition_count for s in scopes if s.scope == GLOBAL_SCOPE), 0)
        return GovernanceStats(
            total_nodes=len(self.db.fetch_nodes()),
            total_transitions=total_transitions,
            scopes=scopes,
        )
