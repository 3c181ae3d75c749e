"""Persistent graph backends."""

from .graph_backend import GraphBackend
from .mirror import GraphMirror, RetryPolicy
from .yaml_file_graph_store import YamlFileGraphBackend

__all__ = ["GraphBackend", "GraphMirror", "RetryPolicy", "YamlFileGraphBackend"]
