"""
Per-session bookkeeping that turns a stream of tool calls into transitions.

The agent runtime calls `ToolTransitionTracker.observe` (or `aobserve` from an
event loop) once per tool invocation. The tracker remembers, per session, which
node was used last and which context the previous turn ran in, so it can
classify the current turn and record the edge from the previous tool to the
current one.

Calls within one session are serialized on a per-session lock held across
registration and recording, so a tool is only published as the session's
previous node once its registration attempt has finished. A tool whose
registration failed is registered again before the next edge out of it is
recorded.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Optional

from .context import infer_context
from .errors import GovernanceError
from .schemas import AgentContext, ContextSignals, NodeKind
from .service import GovernanceService

LOGGER = logging.getLogger(__name__)


@dataclass
class _SessionState:
    last_node: Optional[str] = None
    last_registered: bool = False
    last_context: Optional[AgentContext] = None
    lock: Lock = field(default_factory=Lock, repr=False)


class ToolTransitionTracker:
    """Records transitions between consecutive tool calls of each session."""

    def __init__(self, service: GovernanceService) -> None:
        self._service = service
        self._sessions: Dict[str, _SessionState] = {}
        self._lock = Lock()

    def _session(self, session_id: str) -> _SessionState:
        with self._lock:
            return self._sessions.setdefault(session_id, _SessionState())

    @staticmethod
    def _classify(
        tool_name: str,
        signals: Optional[ContextSignals],
        last_context: Optional[AgentContext],
    ) -> AgentContext:
        base = signals or ContextSignals()
        tools_used = list(base.tools_used)
        if tool_name not in tools_used:
            tools_used.append(tool_name)
        return infer_context(
            base.model_copy(
                update={
                    "tools_used": tools_used,
                    "last_context": base.last_context or last_context,
                }
            )
        )

    def _register(self, node_id: str) -> bool:
        try:
            self._service.ensure_node(node_id, NodeKind.TOOL)
        except GovernanceError as exc:
            LOGGER.warning("Could not register tool node %s: %s", node_id, exc)
            return False
        return True

    def observe(
        self,
        session_id: str,
        tool_name: str,
        signals: Optional[ContextSignals] = None,
    ) -> AgentContext:
        """
        Registers a tool call and records the transition from the previous one.

        The session's previous context is used as `last_context` when the
        signals do not carry one, and the current tool is always counted as
        used for classification. Storage failures are logged, never raised.

        Returns:
            The context inferred for this call.
        """
        state = self._session(session_id)
        with state.lock:
            context = self._classify(tool_name, signals, state.last_context)
            previous = state.last_node
            registered = self._register(tool_name)

            if previous is not None and registered:
                if not state.last_registered:
                    state.last_registered = self._register(previous)
                if state.last_registered:
                    self._service.record_transition(previous, tool_name, context)

            state.last_node = tool_name
            state.last_registered = registered
            state.last_context = context
        return context

    async def aobserve(
        self,
        session_id: str,
        tool_name: str,
        signals: Optional[ContextSignals] = None,
    ) -> AgentContext:
        """
        Runs `observe` off the event loop, waiting at most
        `record_timeout_seconds` for it.

        On timeout the storage work carries on in its worker thread and the
        context is classified from the signals and the session's last known
        context instead.
        """
        fallback = self._classify(tool_name, signals, self.last_context(session_id))
        timeout = self._service.settings.record_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.observe, session_id, tool_name, signals),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Observing %s for session %s exceeded %.2fs; continuing",
                tool_name,
                session_id,
                timeout,
            )
            return fallback

    def last_context(self, session_id: str) -> Optional[AgentContext]:
        with self._lock:
            state = self._sessions.get(session_id)
            return state.last_context if state else None

    def reset(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
