"""
PageRank engine for the transition graph.

The engine is a pure function over a node set and a list of weighted
transitions. It performs a fixed number of synchronous power-iteration rounds:

    R[t+1](v) = d * (inflow(v) + sink_mass / N) + (1 - d) / N

where `inflow(v)` is the rank flowing into `v` along its incoming edges,
proportionally to each edge's share of its source's outgoing weight, and
`sink_mass` is the total rank currently held by nodes with no outgoing weight.
Redistributing sink mass uniformly keeps the scores summing to 1 after every
round.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from .schemas import Transition

DEFAULT_DAMPING = 0.85
DEFAULT_ITERATIONS = 20


def compute_pagerank(
    nodes: Iterable[str],
    transitions: Iterable[Transition],
    damping: float = DEFAULT_DAMPING,
    iterations: int = DEFAULT_ITERATIONS,
) -> Dict[str, float]:
    """
    Compute PageRank scores for a weighted directed graph.

    Args:
        nodes: Identifiers of the nodes to rank. Duplicates are ignored.
        transitions: Weighted edges between nodes. Edges with an endpoint
            outside `nodes` are ignored.
        damping: Probability of following an edge rather than teleporting.
            Must lie in (0, 1).
        iterations: Exact number of update rounds to run.

    Returns:
        A mapping of node id to score. Empty when `nodes` is empty.
    """
    node_ids = list(dict.fromkeys(nodes))
    n = len(node_ids)
    if n == 0:
        return {}

    known = set(node_ids)
    incoming: Dict[str, List[Tuple[str, int]]] = defaultdict(list)
    out_weight: Dict[str, float] = defaultdict(float)
    for t in transitions:
        if t.from_node not in known or t.to_node not in known:
            continue
        incoming[t.to_node].append((t.from_node, t.weight))
        out_weight[t.from_node] += t.weight

    sinks = [node_id for node_id in node_ids if out_weight.get(node_id, 0) <= 0]
    teleport = (1.0 - damping) / n

    ranks = {node_id: 1.0 / n for node_id in node_ids}
    for _ in range(iterations):
        sink_share = sum(ranks[node_id] for node_id in sinks) / n
        new_ranks: Dict[str, float] = {}
        for node_id in node_ids:
            inflow = 0.0
            for source, weight in incoming.get(node_id, ()):
                total = out_weight[source]
                if total > 0:
                    inflow += ranks[source] * weight / total
            new_ranks[node_id] = damping * (inflow + sink_share) + teleport
        ranks = new_ranks

    return ranks


__all__ = ["DEFAULT_DAMPING", "DEFAULT_ITERATIONS", "compute_pagerank"]
