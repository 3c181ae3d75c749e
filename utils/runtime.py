"""Runtime directory management for ctxgraph.

All runtime data is stored under ~/.ctxgraph/ directory:
- config: Configuration file (see config.write_default_config)
- graphs/: YAML-based graph persistence
- logs/: Log files (only created when a LogSetup is installed)
"""

import os

RUNTIME_DIR = os.path.join(os.path.expanduser("~"), ".ctxgraph")


def get_graphs_dir() -> str:
    """Get the persisted graphs directory path.

    Returns:
        Path to ~/.ctxgraph/graphs/
    """
    return os.path.join(RUNTIME_DIR, "graphs")


def get_log_dir() -> str:
    """Get the log directory path."""
    return os.path.join(RUNTIME_DIR, "logs")
