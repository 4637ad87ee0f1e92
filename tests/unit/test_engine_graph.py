import pytest

from gcp_env_provisioner.engine.errors import DependencyCycleError
from gcp_env_provisioner.engine.graph import DependencyGraph


def test_topological_order_deterministic() -> None:
    graph = DependencyGraph(nodes=["a", "b", "c"], dependencies={"b": ["a"], "c": ["a"]})
    assert graph.topological_order() == ["a", "b", "c"]


def test_topological_order_ignores_external_deps() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["external"]})
    assert graph.topological_order() == ["a", "b"]


def test_unresolved_dependencies_reported() -> None:
    graph = DependencyGraph(
        nodes=["a", "b"],
        dependencies={"b": ["a", "gcp_network.gone"], "a": ["x", "x"]},
    )
    assert graph.unresolved_dependencies() == {"a": ["x"], "b": ["gcp_network.gone"]}


def test_unresolved_dependencies_empty_for_closed_graph() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["a"]})
    assert graph.unresolved_dependencies() == {}


def test_cycle_detection() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"a": ["b"], "b": ["a"]})
    with pytest.raises(DependencyCycleError, match="a, b"):
        graph.topological_order()


def test_priority_ordering() -> None:
    """Nodes with lower priority come first when no deps constrain order."""
    graph = DependencyGraph(
        nodes=["high", "low"],
        dependencies={},
        priorities={"high": 100, "low": 0},
    )
    assert graph.topological_order() == ["low", "high"]


def test_priority_does_not_override_deps() -> None:
    graph = DependencyGraph(
        nodes=["high", "low"],
        dependencies={"low": ["high"]},
        priorities={"high": 100, "low": 0},
    )
    assert graph.topological_order() == ["high", "low"]


def test_reverse_topological_order() -> None:
    graph = DependencyGraph(
        nodes=["project", "network", "cluster"],
        dependencies={"network": ["project"], "cluster": ["network"]},
    )
    assert graph.reverse_topological_order() == ["cluster", "network", "project"]


def test_diamond_every_node_after_its_deps() -> None:
    deps = {"b": ["a"], "c": ["a"], "d": ["b", "c"]}
    order = DependencyGraph(nodes=["d", "c", "b", "a"], dependencies=deps).topological_order()
    assert order == ["a", "b", "c", "d"]
