"""Data types for the compression engine."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from config import Config
from graph.types import DEFAULT_RELATIONSHIP_IMPORTANCE, ValidationError


class ContextLevel(str, Enum):
    """Context hierarchy levels; each has its own payload shape."""

    GLOBAL = "global"
    PROJECT = "project"
    AGENT = "agent"
    TASK = "task"


class CompressionStrategy:
    """Enum-like class for compression strategies.

    Supported strategies:
    - SUMMARIZE: Age-gated, ratio-based key preservation per context level
    - TRUNCATE: Head/tail truncation of long strings only
    - SMART: Importance-weighted reduction toward a token budget
    - GRAPH_AWARE: SMART with weights boosted by the node's graph position
    - EMERGENCY: Fixed minimal field set, ignores ratios
    """

    NONE = "none"
    SUMMARIZE = "summarize"
    TRUNCATE = "truncate"
    SMART = "smart"
    GRAPH_AWARE = "graph_aware"
    EMERGENCY = "emergency"


# Keys added by the engine to describe what it dropped
SUMMARY_KEY = "_summary"
COMPRESSION_SUMMARY_KEY = "_compression_summary"
HISTORY_SUMMARY_KEY = "history_summary"

DEFAULT_PRESERVE_KEYS = ("id", "status", "error", "output")

# Importance weights used by smart compression (higher = kept first)
DEFAULT_IMPORTANCE_WEIGHTS: Dict[str, float] = {
    "error": 1.0,
    "output": 0.9,
    "status": 1.0,
    "state": 0.95,
    "id": 1.0,
    "agent_id": 1.0,
    "agent_type": 1.0,
    "capabilities": 0.8,
    "config": 0.7,
    "history": 0.3,
    "logs": 0.2,
    "temp_data": 0.1,
    "massive_data": 0.1,
}

# Base weights that graph-aware compression boosts
GRAPH_BASE_WEIGHTS: Dict[str, float] = {
    "error": 1.0,
    "output": 0.9,
    "status": 1.0,
    "id": 1.0,
    "capabilities": 0.8,
    "config": 0.7,
    "history": 0.3,
    "logs": 0.2,
    "temp_data": 0.1,
}

# Never boosted above their base weight
PROTECTED_FIELDS = ("error", "status", "id")

# Extra weights for relationship data when a node has any relationships
RELATIONSHIP_FIELD_WEIGHTS: Dict[str, float] = {
    "parent_id": 0.9,
    "children": 0.8,
    "dependencies": 0.8,
    "references": 0.7,
}

# Field-name fragments that get a 1.3x boost on connected nodes
RELATIONSHIP_KEY_FRAGMENTS = ("parent", "child", "dependency", "reference")


@dataclass(frozen=True)
class CompressionLevel:
    """A named compression level.

    Attributes:
        name: "low", "medium" or "high"
        threshold: Size pressure (current/max) at which this level applies
        preserve_ratio: Fraction of non-essential keys and items retained
    """

    name: str
    threshold: float
    preserve_ratio: float


DEFAULT_COMPRESSION_LEVELS: Dict[str, CompressionLevel] = {
    "low": CompressionLevel("low", threshold=0.3, preserve_ratio=0.8),
    "medium": CompressionLevel("medium", threshold=0.5, preserve_ratio=0.5),
    "high": CompressionLevel("high", threshold=0.7, preserve_ratio=0.2),
}


@dataclass
class CompressionPolicy:
    """Compression levels plus the age below which nothing is compressed."""

    levels: Dict[str, CompressionLevel] = field(
        default_factory=lambda: dict(DEFAULT_COMPRESSION_LEVELS)
    )
    age_threshold: timedelta = timedelta(minutes=30)

    def level(self, name: str) -> CompressionLevel:
        try:
            return self.levels[name]
        except KeyError:
            raise ValueError(
                f"Unknown compression level {name!r}; expected one of {sorted(self.levels)}"
            ) from None


@dataclass
class CompressionConfig:
    """Configuration for a ContextSummarizer."""

    level: str = "medium"
    policy: CompressionPolicy = field(default_factory=CompressionPolicy)
    preserve_keys: List[str] = field(default_factory=lambda: list(DEFAULT_PRESERVE_KEYS))
    max_summary_length: int = 1000
    use_graph_analysis: bool = True
    force_graph_analysis: bool = False
    batch_chunk_size: int = 3
    importance_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_IMPORTANCE_WEIGHTS)
    )
    relationship_importance: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_RELATIONSHIP_IMPORTANCE)
    )

    @classmethod
    def from_config(cls) -> "CompressionConfig":
        """Snapshot the current Config defaults."""
        return cls(
            level=Config.COMPRESSION_LEVEL,
            policy=CompressionPolicy(
                age_threshold=timedelta(seconds=Config.COMPRESSION_AGE_THRESHOLD)
            ),
            preserve_keys=list(Config.COMPRESSION_PRESERVE_KEYS),
            max_summary_length=Config.COMPRESSION_MAX_SUMMARY_LENGTH,
            use_graph_analysis=Config.COMPRESSION_USE_GRAPH_ANALYSIS,
            force_graph_analysis=Config.COMPRESSION_FORCE_GRAPH_ANALYSIS,
            batch_chunk_size=Config.COMPRESSION_BATCH_CHUNK_SIZE,
        )


# ----------------------------------------------------------------------
# Context-level payload shapes
# ----------------------------------------------------------------------


def _require_str(data: Dict[str, Any], key: str, level: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{level} context requires a non-empty string '{key}'")
    return value


def _optional(data: Dict[str, Any], key: str, kind: type, level: str, default: Any) -> Any:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ValidationError(
            f"{level} context field '{key}' must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


@dataclass
class AgentContextData:
    LEVEL: ClassVar[ContextLevel] = ContextLevel.AGENT
    FIELDS: ClassVar[tuple] = ("agent_id", "agent_type", "state", "history", "capabilities")

    agent_id: str
    agent_type: str
    state: Dict[str, Any] = field(default_factory=dict)
    history: List[Any] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentContextData":
        level = cls.LEVEL.value
        return cls(
            agent_id=_require_str(data, "agent_id", level),
            agent_type=_require_str(data, "agent_type", level),
            state=_optional(data, "state", dict, level, {}),
            history=_optional(data, "history", list, level, []),
            capabilities=_optional(data, "capabilities", list, level, []),
            extra={k: v for k, v in data.items() if k not in cls.FIELDS},
        )


TASK_STATUSES = ("pending", "running", "completed", "failed")


@dataclass
class TaskContextData:
    LEVEL: ClassVar[ContextLevel] = ContextLevel.TASK
    FIELDS: ClassVar[tuple] = (
        "task_id",
        "task_type",
        "input",
        "output",
        "status",
        "progress",
        "error",
    )

    task_id: str
    task_type: str
    status: str
    input: Any = None
    output: Any = None
    progress: Optional[float] = None
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        return self.status in ("completed", "failed")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskContextData":
        level = cls.LEVEL.value
        status = data.get("status")
        if status not in TASK_STATUSES:
            raise ValidationError(
                f"task context status must be one of {', '.join(TASK_STATUSES)}, got {status!r}"
            )
        progress = data.get("progress")
        if progress is not None:
            if isinstance(progress, bool) or not isinstance(progress, (int, float)):
                raise ValidationError("task context field 'progress' must be a number")
            if not 0 <= progress <= 100:
                raise ValidationError(f"task context progress must be in [0, 100], got {progress}")
        error = data.get("error")
        if error is not None and not isinstance(error, str):
            raise ValidationError("task context field 'error' must be a string")
        return cls(
            task_id=_require_str(data, "task_id", level),
            task_type=_require_str(data, "task_type", level),
            status=status,
            input=data.get("input"),
            output=data.get("output"),
            progress=progress,
            error=error,
            extra={k: v for k, v in data.items() if k not in cls.FIELDS},
        )


@dataclass
class ProjectContextData:
    LEVEL: ClassVar[ContextLevel] = ContextLevel.PROJECT
    FIELDS: ClassVar[tuple] = (
        "project_name",
        "project_path",
        "config",
        "active_agents",
        "shared_state",
    )

    project_name: str
    project_path: str
    config: Dict[str, Any] = field(default_factory=dict)
    active_agents: List[str] = field(default_factory=list)
    shared_state: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectContextData":
        level = cls.LEVEL.value
        return cls(
            project_name=_require_str(data, "project_name", level),
            project_path=_require_str(data, "project_path", level),
            config=_optional(data, "config", dict, level, {}),
            active_agents=_optional(data, "active_agents", list, level, []),
            shared_state=_optional(data, "shared_state", dict, level, {}),
            extra={k: v for k, v in data.items() if k not in cls.FIELDS},
        )


@dataclass
class GlobalContextData:
    LEVEL: ClassVar[ContextLevel] = ContextLevel.GLOBAL
    FIELDS: ClassVar[tuple] = ("system_config", "active_projects", "global_state")

    system_config: Dict[str, Any] = field(default_factory=dict)
    active_projects: List[str] = field(default_factory=list)
    global_state: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalContextData":
        level = cls.LEVEL.value
        return cls(
            system_config=_optional(data, "system_config", dict, level, {}),
            active_projects=_optional(data, "active_projects", list, level, []),
            global_state=_optional(data, "global_state", dict, level, {}),
            extra={k: v for k, v in data.items() if k not in cls.FIELDS},
        )


ContextData = Union[AgentContextData, TaskContextData, ProjectContextData, GlobalContextData]

_SHAPES: Dict[ContextLevel, Type] = {
    ContextLevel.AGENT: AgentContextData,
    ContextLevel.TASK: TaskContextData,
    ContextLevel.PROJECT: ProjectContextData,
    ContextLevel.GLOBAL: GlobalContextData,
}


def parse_level(level: Any) -> Optional[ContextLevel]:
    """Map a level name to ContextLevel; None for unknown or missing levels."""
    if isinstance(level, ContextLevel):
        return level
    try:
        return ContextLevel(level)
    except ValueError:
        return None


def parse_context_data(level: ContextLevel, data: Any) -> ContextData:
    """Parse a payload into the typed shape for its level.

    Raises:
        ValidationError: If the payload does not match the level's shape
    """
    if not isinstance(data, dict):
        raise ValidationError(
            f"{level.value} context data must be an object, got {type(data).__name__}"
        )
    return _SHAPES[level].from_dict(data)


# ----------------------------------------------------------------------
# Records and results
# ----------------------------------------------------------------------


@dataclass
class ContextRecord:
    """A context as handed to the compression engine.

    Attributes:
        id: Context id (also its graph node id)
        level: Context level name; unknown levels compress generically
        data: The payload to compress
        metadata: Must contain created_at (datetime or ISO string)
        parent_id: Optional parent context id
    """

    id: str
    level: Optional[str]
    data: Any
    metadata: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None

    @property
    def created_at(self) -> datetime:
        value = self.metadata.get("created_at")
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        raise ValidationError(f"Context {self.id} has no created_at in metadata")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "level": self.level.value if isinstance(self.level, ContextLevel) else self.level,
            "metadata": self.metadata,
            "data": self.data,
        }
        if self.parent_id is not None:
            result["parent_id"] = self.parent_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextRecord":
        return cls(
            id=data["id"],
            level=data.get("level"),
            data=data.get("data"),
            metadata=dict(data.get("metadata") or {}),
            parent_id=data.get("parent_id"),
        )


@dataclass
class CompressionResult:
    """Outcome of compressing one context record."""

    record: ContextRecord
    strategy: str
    original_size: int = 0  # Serialized payload size in bytes before compression
    compressed_size: int = 0  # Serialized payload size in bytes after compression
    original_tokens: int = 0
    final_tokens: int = 0
    compressed: bool = True  # False when the payload was returned unchanged
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def payload(self) -> Any:
        return self.record.data

    @property
    def compression_ratio(self) -> float:
        """compressed_size / original_size (1.0 for an empty payload)."""
        if self.original_size == 0:
            return 1.0
        return self.compressed_size / self.original_size

    @property
    def bytes_saved(self) -> int:
        return self.original_size - self.compressed_size
