"""
This module provides a lightweight, thread-safe access layer for the SQLite
database that backs the governance engine.

It encapsulates all SQL operations behind a high-level API: node registration,
atomic transition increments, per-scope damping configuration and the batched
writes of rank snapshots. Every public method runs through a bounded retry
policy so transient lock contention is absorbed, and anything that still fails
surfaces as a `PersistenceError`.

Concurrency-sensitive writes are expressed as single statements so SQLite
applies them atomically: nodes are created with `INSERT ... ON CONFLICT DO
NOTHING` and transition weights are incremented server-side with
`ON CONFLICT DO UPDATE SET weight = weight + excluded.weight`.
"""
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Optional, TypeVar

from .errors import PersistenceError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Lock contention clears on its own; any other OperationalError will not.
_TRANSIENT_MARKERS = ("locked", "busy")


def _is_transient(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class Database:
    """
    Manages all interactions with the SQLite database for the governance engine.

    Attributes:
        path: The file path to the SQLite database.
        timeout: SQLite busy timeout in seconds for each connection.
        retry_attempts: Attempts per operation before raising.
        retry_delay: Initial delay between attempts, doubled after each one.
    """

    def __init__(
        self,
        path: str,
        *,
        timeout: float = 5.0,
        retry_attempts: int = 3,
        retry_delay: float = 0.05,
    ):
        """
        Initializes the Database instance.

        Args:
            path: The file path for the SQLite database.
            timeout: Seconds a connection waits on a locked database.
            retry_attempts: Attempts per operation on transient failures.
            retry_delay: Initial backoff between attempts, in seconds.
        """
        self.path = path
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = max(0.0, retry_delay)

    @contextmanager
    def connect(self):
        """
        Provides a connection to the SQLite database.

        The connection commits when the block exits cleanly. On an exception
        the connection is closed without committing, which discards every
        statement issued inside the block.
        """
        con = sqlite3.connect(self.path, timeout=self.timeout, check_same_thread=False)
        try:
            con.row_factory = sqlite3.Row
            yield con
            con.commit()
        finally:
            con.close()

    def bounded(self, *, timeout: float, retry_attempts: int) -> "Database":
        """
        Returns a handle on the same database with tighter I/O limits.

        The agent's live path uses it so a locked database costs at most
        `timeout * retry_attempts` seconds per call.
        """
        return Database(
            self.path,
            timeout=min(self.timeout, timeout),
            retry_attempts=min(self.retry_attempts, retry_attempts),
            retry_delay=self.retry_delay,
        )

    def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        delay = self.retry_delay
        for attempt in range(1, self.retry_attempts + 1):
            try:
                with self.connect() as con:
                    return fn(con)
            except sqlite3.OperationalError as exc:
                if not _is_transient(exc):
                    LOGGER.error("Storage operation %s failed: %s", operation, exc)
                    raise PersistenceError(operation, attempt) from exc
                if attempt == self.retry_attempts:
                    LOGGER.error(
                        "Storage operation %s failed after %d attempt(s): %s",
                        operation,
                        attempt,
                        exc,
                    )
                    raise PersistenceError(operation, attempt) from exc
                LOGGER.warning(
                    "Storage operation %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    operation,
                    attempt,
                    self.retry_attempts,
                    exc,
                    delay,
                )
                time.sleep(delay)
                delay = delay * 2 if delay else 0.0
            except sqlite3.Error as exc:
                LOGGER.error("Storage operation %s failed: %s", operation, exc)
                raise PersistenceError(operation, attempt) from exc
        raise PersistenceError(operation, self.retry_attempts)  # pragma: no cover

    def init_schema(self, contexts: Iterable[str], *, global_scope: str = "global") -> None:
        """
        Creates the governance tables and seeds the known scopes.

        Idempotent: existing tables, scopes and damping values are left alone,
        so it can be called on every startup.

        Args:
            contexts: Context names to register as scopes.
            global_scope: Name of the scope that addresses the global graph.
        """
        scopes = [global_scope, *contexts]

        def _init(con: sqlite3.Connection) -> None:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS nodes (
                    node_id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    rank_score REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS scopes (
                    scope TEXT PRIMARY KEY,
                    damping_factor REAL,
                    last_run TEXT
                )
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS transitions (
                    from_node TEXT NOT NULL REFERENCES nodes(node_id),
                    to_node TEXT NOT NULL REFERENCES nodes(node_id),
                    scope TEXT NOT NULL REFERENCES scopes(scope),
                    weight INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (from_node, to_node, scope)
                )
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS context_ranks (
                    node_id TEXT NOT NULL REFERENCES nodes(node_id),
                    context TEXT NOT NULL REFERENCES scopes(scope),
                    rank_score REAL NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (node_id, context)
                )
                """
            )
            con.executemany(
                "INSERT INTO scopes (scope) VALUES (?) ON CONFLICT(scope) DO NOTHING",
                [(scope,) for scope in scopes],
            )

        self._run("init_schema", _init)

    def insert_node_if_absent(
        self,
        *,
        node_id: str,
        kind: str,
        initial_score: float,
        now: datetime,
    ) -> bool:
        """
        Inserts a node unless one with the same id already exists.

        Returns:
            True if a new node was created, False if it already existed.
        """

        def _insert(con: sqlite3.Connection) -> bool:
            cur = con.execute(
                """
                INSERT INTO nodes (node_id, kind, rank_score, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(node_id) DO NOTHING
                """,
                (node_id, kind, initial_score, now.isoformat(), now.isoformat()),
            )
            return cur.rowcount > 0

        return self._run("insert_node_if_absent", _insert)

    def increment_transition(self, *, from_node: str, to_node: str, scope: str, delta: int = 1) -> bool:
        """
        Atomically adds `delta` to the weight of a scoped transition.

        The transition is created with weight `delta` on first observation.
        Nothing is written when either endpoint is missing from `nodes`.

        Returns:
            True if a transition was created or incremented, False if an
            endpoint was missing.
        """

        def _increment(con: sqlite3.Connection) -> bool:
            cur = con.execute(
                """
                INSERT INTO transitions (from_node, to_node, scope, weight)
                SELECT ?, ?, ?, ?
                WHERE EXISTS (SELECT 1 FROM nodes WHERE node_id = ?)
                  AND EXISTS (SELECT 1 FROM nodes WHERE node_id = ?)
                ON CONFLICT(from_node, to_node, scope) DO UPDATE SET
                    weight = transitions.weight + excluded.weight
                """,
                (from_node, to_node, scope, delta, from_node, to_node),
            )
            return cur.rowcount > 0

        return self._run("increment_transition", _increment)

    def fetch_node(self, *, node_id: str) -> Optional[sqlite3.Row]:
        return self._run(
            "fetch_node",
            lambda con: con.execute("SELECT * FROM nodes WHERE node_id = ?", (node_id,)).fetchone(),
        )

    def fetch_nodes(self) -> List[sqlite3.Row]:
        return self._run(
            "fetch_nodes",
            lambda con: list(con.execute("SELECT * FROM nodes ORDER BY node_id").fetchall()),
        )

    def fetch_transitions(self, *, scope: str) -> List[sqlite3.Row]:
        return self._run(
            "fetch_transitions",
            lambda con: list(
                con.execute(
                    """
                    SELECT from_node, to_node, weight FROM transitions
                    WHERE scope = ?
                    ORDER BY from_node, to_node
                    """,
                    (scope,),
                ).fetchall()
            ),
        )

    def fetch_weight(self, *, from_node: str, to_node: str, scope: str) -> int:
        """
        Returns the weight of a scoped transition, or 0 when it was never seen.
        """

        def _fetch(con: sqlite3.Connection) -> int:
            row = con.execute(
                "SELECT weight FROM transitions WHERE from_node = ? AND to_node = ? AND scope = ?",
                (from_node, to_node, scope),
            ).fetchone()
            return int(row["weight"]) if row else 0

        return self._run("fetch_weight", _fetch)

    def scope_exists(self, *, scope: str) -> bool:
        return self._run(
            "scope_exists",
            lambda con: con.execute("SELECT 1 FROM scopes WHERE scope = ?", (scope,)).fetchone() is not None,
        )

    def fetch_damping(self, *, scope: str) -> Optional[float]:
        def _fetch(con: sqlite3.Connection) -> Optional[float]:
            row = con.execute("SELECT damping_factor FROM scopes WHERE scope = ?", (scope,)).fetchone()
            if row is None or row["damping_factor"] is None:
                return None
            return float(row["damping_factor"])

        return self._run("fetch_damping", _fetch)

    def set_damping(self, *, scope: str, damping: Optional[float]) -> bool:
        def _set(con: sqlite3.Connection) -> bool:
            cur = con.execute("UPDATE scopes SET damping_factor = ? WHERE scope = ?", (damping, scope))
            return cur.rowcount > 0

        return self._run("set_damping", _set)

    def fetch_scopes(self) -> List[sqlite3.Row]:
        """
        Lists every scope with its damping factor, last run and edge count.
        """
        return self._run(
            "fetch_scopes",
            lambda con: list(
                con.execute(
                    """
                    SELECT s.scope, s.damping_factor, s.last_run,
                           (SELECT COUNT(*) FROM transitions t WHERE t.scope = s.scope) AS transition_count
                    FROM scopes s
                    ORDER BY s.scope
                    """
                ).fetchall()
            ),
        )

    @staticmethod
    def _touch(con: sqlite3.Connection, scope: str, at: datetime) -> None:
        con.execute(
            """
            INSERT INTO scopes (scope, last_run) VALUES (?, ?)
            ON CONFLICT(scope) DO UPDATE SET last_run = excluded.last_run
            """,
            (scope, at.isoformat()),
        )

    def touch_last_run(self, *, scope: str, at: datetime) -> None:
        self._run("touch_last_run", lambda con: self._touch(con, scope, at))

    def write_global_ranks(self, *, scores: Mapping[str, float], scope: str, at: datetime) -> None:
        """
        Overwrites every node's global `rank_score` and stamps the scope's
        last run, all in one transaction.
        """

        def _write(con: sqlite3.Connection) -> None:
            con.executemany(
                "UPDATE nodes SET rank_score = ?, updated_at = ? WHERE node_id = ?",
                [(score, at.isoformat(), node_id) for node_id, score in scores.items()],
            )
            self._touch(con, scope, at)

        self._run("write_global_ranks", _write)

    def write_context_ranks(self, *, context: str, scores: Mapping[str, float], at: datetime) -> None:
        """
        Upserts the context-scoped rank of every node and stamps the context's
        last run, all in one transaction. Global scores are not touched.
        """

        def _write(con: sqlite3.Connection) -> None:
            con.executemany(
                """
                INSERT INTO context_ranks (node_id, context, rank_score, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(node_id, context) DO UPDATE SET
                    rank_score = excluded.rank_score,
                    updated_at = excluded.updated_at
                """,
                [(node_id, context, score, at.isoformat()) for node_id, score in scores.items()],
            )
            self._touch(con, context, at)

        self._run("write_context_ranks", _write)

    def fetch_context_ranks(self, *, context: str) -> List[sqlite3.Row]:
        return self._run(
            "fetch_context_ranks",
            lambda con: list(
                con.execute(
                    "SELECT node_id, rank_score FROM context_ranks WHERE context = ? ORDER BY node_id",
                    (context,),
                ).fetchall()
            ),
        )

    def fetch_ranked(
        self,
        *,
        context: Optional[str] = None,
        kind: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[sqlite3.Row]:
        """
        Fetches nodes ordered by score, highest first.

        With a `context`, a node's context rank is used when present and its
        global score otherwise.

        Args:
            context: Context whose ranks to prefer, or None for global scores.
            kind: Restrict to nodes of this kind.
            limit: Maximum number of rows to return.
        """
        query = """
            SELECT n.node_id, n.kind, COALESCE(cr.rank_score, n.rank_score) AS score
            FROM nodes n
            LEFT JOIN context_ranks cr ON cr.node_id = n.node_id AND cr.context = ?
        """
        params: list = [context]
        if kind is not None:
            query += " WHERE n.kind = ?"
            params.append(kind)
        query += " ORDER BY score DESC, n.node_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return self._run("fetch_ranked", lambda con: list(con.execute(query, params).fetchall()))
