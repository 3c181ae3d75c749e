"""Budget-aware compression of context records."""

from .summarizer import ContextSummarizer
from .types import (
    DEFAULT_COMPRESSION_LEVELS,
    AgentContextData,
    CompressionConfig,
    CompressionLevel,
    CompressionPolicy,
    CompressionResult,
    CompressionStrategy,
    ContextLevel,
    ContextRecord,
    GlobalContextData,
    ProjectContextData,
    TaskContextData,
    parse_context_data,
)

__all__ = [
    "ContextSummarizer",
    "DEFAULT_COMPRESSION_LEVELS",
    "AgentContextData",
    "CompressionConfig",
    "CompressionLevel",
    "CompressionPolicy",
    "CompressionResult",
    "CompressionStrategy",
    "ContextLevel",
    "ContextRecord",
    "GlobalContextData",
    "ProjectContextData",
    "TaskContextData",
    "parse_context_data",
]
