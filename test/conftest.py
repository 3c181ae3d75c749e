"""Shared pytest fixtures for graph and compression tests."""

from datetime import datetime, timedelta

import pytest

from config import Config
from graph import ContextGraph, GraphConfig


@pytest.fixture
def set_config(monkeypatch):
    """Fixture to temporarily set configuration values.

    Usage:
        def test_something(set_config):
            set_config(MAX_TRAVERSAL_DEPTH=2, IMPACT_DECAY_FACTOR=0.5)
            graph = ContextGraph()
            ...
    """

    def _set_config(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setattr(Config, key, value)

    return _set_config


@pytest.fixture
def graph():
    """An empty graph with the default traversal settings."""
    return ContextGraph(config=GraphConfig())


@pytest.fixture
def sample_graph(graph):
    """Nodes A-D: A parents B and C, B depends on D, C references D."""
    for node_id in ("A", "B", "C", "D"):
        graph.add_node(node_id, {"id": node_id, "name": f"context {node_id}"})
    graph.add_edge("A", "B", "parent", 1.0)
    graph.add_edge("A", "C", "parent", 1.0)
    graph.add_edge("B", "D", "depends-on", 0.9)
    graph.add_edge("C", "D", "references", 0.5)
    return graph


@pytest.fixture
def chain_graph(graph):
    """A -> B -> C -> D over unit-weight depends-on edges."""
    for node_id in ("A", "B", "C", "D"):
        graph.add_node(node_id, {"id": node_id})
    graph.add_edge("A", "B", "depends-on")
    graph.add_edge("B", "C", "depends-on")
    graph.add_edge("C", "D", "depends-on")
    return graph


@pytest.fixture
def old_timestamp():
    """A creation time well past the default compression age threshold."""
    return (datetime.now() - timedelta(hours=2)).isoformat()
