from __future__ import annotations

import pytest

from agent_governance.pagerank import compute_pagerank
from agent_governance.schemas import Transition


def _t(src: str, dst: str, weight: int = 1) -> Transition:
    return Transition(from_node=src, to_node=dst, weight=weight)


GRAPHS = {
    "no_edges": (["a", "b", "c"], []),
    "cycle": (["a", "b", "c"], [_t("a", "b", 2), _t("b", "c"), _t("c", "a")]),
    "all_into_sink": (["a", "b", "c", "d"], [_t("a", "d"), _t("b", "d"), _t("c", "d", 5)]),
    "self_loops": (["a", "b"], [_t("a", "a", 3), _t("a", "b"), _t("b", "b")]),
    "zero_weight": (["a", "b", "c"], [_t("a", "b", 0), _t("b", "c", 4)]),
    "isolated_plus_chain": (["a", "b", "c", "z"], [_t("a", "b"), _t("b", "c"), _t("c", "b", 2)]),
}


def test_empty_node_set_returns_empty_mapping() -> None:
    assert compute_pagerank([], [_t("a", "b")], 0.85, 20) == {}


@pytest.mark.parametrize("iterations", [0, 1, 5, 20])
def test_single_node_without_edges_holds_all_mass(iterations: int) -> None:
    scores = compute_pagerank(["a"], [], 0.85, iterations)
    assert scores == {"a": pytest.approx(1.0, abs=1e-12)}


def test_zero_iterations_returns_uniform_distribution() -> None:
    scores = compute_pagerank(["a", "b", "c", "d"], [_t("a", "b")], 0.85, 0)
    assert scores == {node: 0.25 for node in "abcd"}


@pytest.mark.parametrize("name", sorted(GRAPHS))
@pytest.mark.parametrize("damping", [0.15, 0.5, 0.85, 0.99])
@pytest.mark.parametrize("iterations", [1, 3, 20, 50])
def test_scores_sum_to_one(name: str, damping: float, iterations: int) -> None:
    nodes, transitions = GRAPHS[name]
    scores = compute_pagerank(nodes, transitions, damping, iterations)
    assert set(scores) == set(nodes)
    assert sum(scores.values()) == pytest.approx(1.0, abs=1e-9)


def test_sink_mass_is_redistributed_after_one_iteration() -> None:
    scores = compute_pagerank(["a", "b"], [_t("a", "b")], 0.85, 1)
    # b is a sink holding 0.5; its mass is spread over both nodes.
    assert scores["a"] == pytest.approx(0.2875)
    assert scores["b"] == pytest.approx(0.7125)


def test_updates_are_synchronous_across_iterations() -> None:
    scores = compute_pagerank(["a", "b"], [_t("a", "b")], 0.85, 2)
    assert scores["a"] == pytest.approx(0.3778125)
    assert scores["b"] == pytest.approx(0.6221875)


def test_self_loop_keeps_mass_on_its_node() -> None:
    scores = compute_pagerank(["a", "b"], [_t("a", "a")], 0.85, 1)
    assert scores["a"] == pytest.approx(0.7125)
    assert scores["b"] == pytest.approx(0.2875)


def test_outflow_is_split_by_edge_weight() -> None:
    d = 0.85
    scores = compute_pagerank(["a", "b", "c"], [_t("a", "b", 3), _t("a", "c", 1)], d, 1)
    sink_share = (2 / 3) / 3
    teleport = (1 - d) / 3
    assert scores["a"] == pytest.approx(d * sink_share + teleport)
    assert scores["b"] == pytest.approx(d * (1 / 3 * 0.75 + sink_share) + teleport)
    assert scores["c"] == pytest.approx(d * (1 / 3 * 0.25 + sink_share) + teleport)
    assert scores["b"] > scores["c"] > scores["a"]


def test_isolated_node_receives_teleport_and_sink_share() -> None:
    d = 0.85
    scores = compute_pagerank(["a", "b", "z"], [_t("a", "b"), _t("b", "a")], d, 1)
    assert scores["z"] == pytest.approx(d * (1 / 3) / 3 + (1 - d) / 3)


def test_edges_with_unknown_endpoints_are_ignored() -> None:
    with_ghost = compute_pagerank(["a", "b"], [_t("a", "b"), _t("a", "ghost", 10)], 0.85, 20)
    without = compute_pagerank(["a", "b"], [_t("a", "b")], 0.85, 20)
    assert with_ghost == without
    assert "ghost" not in with_ghost


def test_three_node_cycle_regression() -> None:
    nodes, transitions = GRAPHS["cycle"]
    expected = {"a": 1 / 3, "b": 1 / 3, "c": 1 / 3}

    first = compute_pagerank(nodes, transitions, 0.85, 20)
    second = compute_pagerank(nodes, transitions, 0.85, 20)

    assert first == pytest.approx(expected, abs=1e-12)
    assert first == second


def test_chain_ranks_the_most_reached_node_highest() -> None:
    nodes, transitions = GRAPHS["isolated_plus_chain"]
    scores = compute_pagerank(nodes, transitions, 0.85, 20)
    assert max(scores, key=scores.get) == "b"
    # Neither has inbound edges, so both settle on teleport plus sink share.
    assert scores["z"] == pytest.approx(scores["a"])
