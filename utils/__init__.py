"""Utility modules for ctxgraph."""

from .logger import PACKAGE_LOGGERS, LogSetup

# Note: Runtime functions are NOT exported here.
# Import directly from utils.runtime when needed:
#   from utils.runtime import get_graphs_dir, get_log_dir

__all__ = [
    "LogSetup",
    "PACKAGE_LOGGERS",
]
