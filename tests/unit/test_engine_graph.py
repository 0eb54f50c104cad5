import pytest

from gcp_provisioner.engine.errors import CycleError
from gcp_provisioner.engine.graph import DependencyGraph


def test_topological_order_deterministic() -> None:
    graph = DependencyGraph(nodes=["a", "b", "c"], dependencies={"b": ["a"], "c": ["a"]})
    assert graph.topological_order() == ["a", "b", "c"]


def test_topological_order_ignores_external_deps() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["external"]})
    assert graph.topological_order() == ["a", "b"]


def test_cycle_detection() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"a": ["b"], "b": ["a"]})
    with pytest.raises(CycleError) as exc_info:
        graph.topological_order()
    assert "a -> b -> a" in str(exc_info.value)


def test_find_cycle_reports_path() -> None:
    graph = DependencyGraph(
        nodes=["a", "b", "c", "d"],
        dependencies={"a": ["b"], "b": ["c"], "c": ["a"], "d": ["a"]},
    )
    assert graph.find_cycle() == ["a", "b", "c", "a"]


def test_find_cycle_self_loop() -> None:
    graph = DependencyGraph(nodes=["a"], dependencies={"a": ["a"]})
    assert graph.find_cycle() == ["a", "a"]


def test_find_cycle_none_when_acyclic() -> None:
    graph = DependencyGraph(nodes=["a", "b"], dependencies={"b": ["a"]})
    assert graph.find_cycle() is None


def test_priority_ordering() -> None:
    """Nodes with lower priority come first when no deps constrain order."""
    graph = DependencyGraph(
        nodes=["high", "low"],
        dependencies={},
        priorities={"high": 100, "low": 0},
    )
    assert graph.topological_order() == ["low", "high"]


def test_priority_does_not_override_deps() -> None:
    """Dependencies are still respected even with priority mismatch."""
    graph = DependencyGraph(
        nodes=["high", "low"],
        dependencies={"low": ["high"]},
        priorities={"high": 100, "low": 0},
    )
    assert graph.topological_order() == ["high", "low"]


def test_reverse_topological_order_puts_dependents_first() -> None:
    graph = DependencyGraph(
        nodes=["net", "subnet", "db"],
        dependencies={"subnet": ["net"], "db": ["subnet"]},
    )
    assert graph.reverse_topological_order() == ["db", "subnet", "net"]


def test_dependents_and_transitive_dependents() -> None:
    graph = DependencyGraph(
        nodes=["a", "b", "c", "d"],
        dependencies={"b": ["a"], "c": ["b"], "d": []},
    )
    assert graph.dependencies("c") == {"b"}
    assert graph.dependents("a") == {"b"}
    assert graph.transitive_dependents("a") == {"b", "c"}
    assert graph.transitive_dependents("d") == set()
