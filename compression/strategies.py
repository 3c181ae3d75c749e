"""Pure compression functions: payload in, new payload out.

None of these functions mutate their input. The ContextSummarizer decides
which one to apply and records sizes and metadata around the call.
"""

import copy
import json
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from graph.analyzer import GraphAnalysis

from .types import (
    COMPRESSION_SUMMARY_KEY,
    DEFAULT_IMPORTANCE_WEIGHTS,
    GRAPH_BASE_WEIGHTS,
    HISTORY_SUMMARY_KEY,
    PROTECTED_FIELDS,
    RELATIONSHIP_FIELD_WEIGHTS,
    RELATIONSHIP_KEY_FRAGMENTS,
    SUMMARY_KEY,
    AgentContextData,
    ContextLevel,
    GlobalContextData,
    ProjectContextData,
    TaskContextData,
    parse_context_data,
)

DEFAULT_WEIGHT = 0.5


# ----------------------------------------------------------------------
# Measurement
# ----------------------------------------------------------------------


def serialize(payload: Any) -> str:
    """Compact JSON form of a payload, used for every size measurement."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def payload_size(payload: Any) -> int:
    """Serialized size of a payload in UTF-8 bytes."""
    return len(serialize(payload).encode("utf-8"))


def estimate_tokens(payload: Any) -> int:
    """Rough token count: one token per four serialized bytes."""
    return math.ceil(payload_size(payload) / 4)


# ----------------------------------------------------------------------
# Text
# ----------------------------------------------------------------------


def extract_key_points(text: str, max_length: int) -> str:
    """Shorten text to its head and tail around an omission marker.

    Returns the text unchanged when it fits, or when the marker would make
    the result no shorter than the input.
    """
    if len(text) <= max_length:
        return text

    part = max(max_length // 2, 0)
    omitted = len(text) - 2 * part
    head = text[:part]
    tail = text[len(text) - part :] if part else ""
    result = f"{head}...[{omitted} chars omitted]...{tail}"
    return result if len(result) < len(text) else text


def truncate_text(payload: Any, max_length: int) -> Any:
    """Shorten every string longer than max_length, at any depth."""
    if isinstance(payload, str):
        return extract_key_points(payload, max_length)
    if isinstance(payload, dict):
        return {key: truncate_text(value, max_length) for key, value in payload.items()}
    if isinstance(payload, list):
        return [truncate_text(item, max_length) for item in payload]
    return payload


# ----------------------------------------------------------------------
# Ratio-based summarization
# ----------------------------------------------------------------------


def preserve_important_keys(obj: Any, ratio: float, preserve_keys: Sequence[str]) -> Any:
    """Keep must-keep keys plus ceil(n * ratio) of the other keys.

    The other keys are kept smallest serialized value first. Dropped keys
    are recorded as ``_summary: "N keys omitted"``.
    """
    if not isinstance(obj, dict):
        return copy.deepcopy(obj)

    kept = {key: copy.deepcopy(obj[key]) for key in preserve_keys if key in obj}
    others = sorted((key for key in obj if key not in kept), key=lambda k: payload_size(obj[k]))
    keep_count = math.ceil(len(others) * ratio)
    for key in others[:keep_count]:
        kept[key] = copy.deepcopy(obj[key])

    omitted = len(others) - keep_count
    if omitted > 0:
        kept[SUMMARY_KEY] = f"{omitted} keys omitted"
    return kept


def summarize_history(history: List[Any], ratio: float) -> List[Any]:
    """Keep the first two entries plus the most recent ones.

    With keep = ceil(n * ratio) the result has 2 + max(0, keep - 2)
    entries, never more than n.
    """
    keep_count = math.ceil(len(history) * ratio)
    if len(history) <= max(keep_count, 2):
        return copy.deepcopy(history)

    head = history[:2]
    tail_count = max(keep_count - 2, 0)
    tail = history[len(history) - tail_count :] if tail_count else []
    return copy.deepcopy(head + tail)


def _carry_keys(data: Dict[str, Any], result: Dict[str, Any], preserve_keys: Iterable[str]) -> None:
    for key in preserve_keys:
        if key in data and key not in result:
            result[key] = copy.deepcopy(data[key])


def summarize_agent(data: AgentContextData, ratio: float, preserve_keys: Sequence[str]) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "agent_id": data.agent_id,
        "agent_type": data.agent_type,
        "state": preserve_important_keys(data.state, ratio, preserve_keys),
        "capabilities": list(data.capabilities),
        "history": summarize_history(data.history, ratio),
    }
    if len(result["history"]) < len(data.history):
        result[HISTORY_SUMMARY_KEY] = (
            f"{len(data.history)} entries, {len(result['history'])} retained"
        )
    return result


def summarize_task(data: TaskContextData, ratio: float, preserve_keys: Sequence[str]) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "task_id": data.task_id,
        "task_type": data.task_type,
        "status": data.status,
    }
    if data.input is not None:
        result["input"] = preserve_important_keys(data.input, ratio, preserve_keys)
    if data.progress is not None:
        result["progress"] = data.progress
    if data.error is not None:
        result["error"] = data.error
    if data.output is not None:
        # Finished tasks are summarized by their result; keep it whole
        result["output"] = (
            copy.deepcopy(data.output)
            if data.is_finished
            else preserve_important_keys(data.output, ratio, preserve_keys)
        )
    return result


def summarize_project(
    data: ProjectContextData, ratio: float, preserve_keys: Sequence[str]
) -> Dict[str, Any]:
    return {
        "project_name": data.project_name,
        "project_path": data.project_path,
        "config": preserve_important_keys(data.config, ratio, preserve_keys),
        "active_agents": list(data.active_agents),
        "shared_state": preserve_important_keys(data.shared_state, ratio, preserve_keys),
    }


def summarize_data(
    level: Optional[ContextLevel], data: Any, ratio: float, preserve_keys: Sequence[str]
) -> Any:
    """Apply the level-specific summary.

    Global contexts are returned as a copy. Unknown levels (None) get the
    generic key-preserving reduction.

    Raises:
        ValidationError: If the payload does not match the level's shape
    """
    if level is None:
        return preserve_important_keys(data, ratio, preserve_keys)

    parsed = parse_context_data(level, data)
    if isinstance(parsed, GlobalContextData):
        return copy.deepcopy(data)
    if isinstance(parsed, AgentContextData):
        result = summarize_agent(parsed, ratio, preserve_keys)
    elif isinstance(parsed, TaskContextData):
        result = summarize_task(parsed, ratio, preserve_keys)
    else:
        result = summarize_project(parsed, ratio, preserve_keys)

    _carry_keys(data, result, preserve_keys)
    return result


# ----------------------------------------------------------------------
# Importance-weighted (smart and graph-aware) compression
# ----------------------------------------------------------------------


def get_importance_weight(key: str, weights: Dict[str, float]) -> float:
    """Weight of a field: exact name, then case-insensitive substring, else 0.5."""
    if key in weights:
        return weights[key]
    lowered = key.lower()
    for name, weight in weights.items():
        if name.lower() in lowered:
            return weight
    return DEFAULT_WEIGHT


def _compress_list(items: List[Any], ratio: float) -> List[Any]:
    keep_count = max(1, math.ceil(len(items) * ratio))
    return copy.deepcopy(items[-keep_count:]) if items else []


def _compress_text(text: str, ratio: float, max_text_length: int) -> str:
    if len(text) <= max_text_length:
        return text
    return extract_key_points(text, math.ceil(len(text) * ratio))


def smart_compress(
    data: Any,
    ratio: float,
    weights: Optional[Dict[str, float]] = None,
    preserve_keys: Sequence[str] = (),
    max_text_length: int = 1000,
) -> Any:
    """Drop the least important fields, recursively.

    Objects keep must-keep keys plus the highest-weighted keys up to
    ceil(n * ratio); lists keep their most recent items; long strings are
    shortened around an omission marker.
    """
    weights = weights if weights is not None else DEFAULT_IMPORTANCE_WEIGHTS

    if isinstance(data, list):
        return _compress_list(data, ratio)
    if isinstance(data, str):
        return _compress_text(data, ratio, max_text_length)
    if not isinstance(data, dict):
        return data

    ranked = sorted(
        data.keys(),
        key=lambda k: (k not in preserve_keys, -get_importance_weight(k, weights)),
    )
    must_keep = [k for k in ranked if k in preserve_keys]
    keep_count = max(1, len(must_keep), math.ceil(len(ranked) * ratio))
    kept_keys = ranked[:keep_count]

    result: Dict[str, Any] = {}
    for key in kept_keys:
        value = data[key]
        if isinstance(value, (dict, list, str)):
            result[key] = smart_compress(value, ratio, weights, preserve_keys, max_text_length)
        else:
            result[key] = value

    dropped = [k for k in data if k not in result]
    if dropped:
        result[COMPRESSION_SUMMARY_KEY] = {
            "original_keys": len(data),
            "preserved_keys": len(kept_keys),
            "dropped_keys": len(dropped),
            "dropped_key_names": dropped,
        }
    return result


def enhance_weights(
    analysis: GraphAnalysis, base_weights: Optional[Dict[str, float]] = None
) -> Dict[str, float]:
    """Boost base weights by the node's importance and centrality.

    Error, status and id keep their base weight. Relationship fields are
    added when the node has any relationships.
    """
    base = base_weights if base_weights is not None else GRAPH_BASE_WEIGHTS
    boost = 1 + analysis.enhancement_factor + analysis.centrality_bonus
    weights = {
        key: weight if key in PROTECTED_FIELDS else min(weight * boost, 1.0)
        for key, weight in base.items()
    }
    if analysis.relationship_count > 0:
        weights.update(RELATIONSHIP_FIELD_WEIGHTS)
    return weights


def graph_weight(key: str, weights: Dict[str, float], analysis: GraphAnalysis) -> float:
    weight = get_importance_weight(key, weights)
    if analysis.relationship_count > 0 and key not in PROTECTED_FIELDS:
        lowered = key.lower()
        if any(fragment in lowered for fragment in RELATIONSHIP_KEY_FRAGMENTS):
            weight = min(weight * 1.3, 1.0)
    return weight


def graph_aware_compress(
    data: Any,
    ratio: float,
    analysis: GraphAnalysis,
    weights: Optional[Dict[str, float]] = None,
    preserve_keys: Sequence[str] = (),
    max_text_length: int = 1000,
) -> Any:
    """Smart compression with retention raised for central nodes.

    Args:
        data: Payload to compress
        ratio: Base retention ratio
        analysis: The node's graph analysis
        weights: Field weights (default: enhance_weights(analysis))
        preserve_keys: Keys kept at every object level
        max_text_length: Strings up to this length are never shortened

    Returns:
        The compressed payload
    """
    weights = weights if weights is not None else enhance_weights(analysis)

    if isinstance(data, list):
        return _compress_list(data, min(ratio * (1 + analysis.array_centrality_bonus), 1.0))
    if isinstance(data, str):
        return _compress_text(
            data, min(ratio * (1 + analysis.centrality_bonus), 1.0), max_text_length
        )
    if not isinstance(data, dict):
        return data

    adjusted = min(ratio * (1 + analysis.centrality_bonus), 1.0)
    ranked = sorted(
        data.keys(),
        key=lambda k: (k not in preserve_keys, -graph_weight(k, weights, analysis)),
    )
    must_keep = [k for k in ranked if k in preserve_keys]
    keep_count = max(1, len(must_keep), math.ceil(len(ranked) * adjusted))
    kept_keys = ranked[:keep_count]

    result: Dict[str, Any] = {}
    for key in kept_keys:
        value = data[key]
        if isinstance(value, (dict, list, str)):
            result[key] = graph_aware_compress(
                value, ratio, analysis, weights, preserve_keys, max_text_length
            )
        else:
            result[key] = value

    dropped = [k for k in data if k not in result]
    if dropped:
        result[COMPRESSION_SUMMARY_KEY] = {
            "original_keys": len(data),
            "preserved_keys": len(kept_keys),
            "dropped_keys": len(dropped),
            "dropped_key_names": dropped,
            "graph_aware": True,
            "centrality_score": analysis.centrality_score,
            "relationship_count": analysis.relationship_count,
        }
    return result


# ----------------------------------------------------------------------
# Emergency
# ----------------------------------------------------------------------


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def emergency_data(level: Optional[ContextLevel], data: Any) -> Dict[str, Any]:
    """Reduce a payload to a fixed minimal field set for its level."""
    source = data if isinstance(data, dict) else {}

    if level is ContextLevel.AGENT:
        state = source.get("state") if isinstance(source.get("state"), dict) else {}
        history = source.get("history") if isinstance(source.get("history"), list) else []
        output = source.get("output")
        return _drop_none(
            {
                "agent_id": source.get("agent_id"),
                "agent_type": source.get("agent_type"),
                "state": _drop_none(
                    {
                        "status": state.get("status"),
                        "error": state.get("error"),
                        "progress": state.get("progress"),
                        "summary": "Emergency compressed - detailed state removed",
                    }
                ),
                "output": {"result": extract_key_points(serialize(output), 200)}
                if output is not None
                else None,
                "history": [f"Emergency compressed - {len(history)} entries removed"],
                "capabilities": source.get("capabilities"),
            }
        )

    if level is ContextLevel.TASK:
        task_input = source.get("input")
        output = source.get("output")
        return _drop_none(
            {
                "task_id": source.get("task_id"),
                "task_type": source.get("task_type"),
                "input": {"summary": extract_key_points(serialize(task_input), 200)}
                if task_input is not None
                else {},
                "output": extract_key_points(serialize(output), 200) if output is not None else None,
                "status": source.get("status"),
                "progress": source.get("progress"),
                "error": source.get("error"),
            }
        )

    if level is ContextLevel.PROJECT:
        return _drop_none(
            {
                "project_name": source.get("project_name"),
                "project_path": source.get("project_path"),
                "config": {"emergency": True},
                "active_agents": source.get("active_agents"),
                "shared_state": {"emergency": "summarized"},
            }
        )

    return {
        "summary": "Emergency compressed context",
        "original_level": level.value if level is not None else None,
        "critical_data": extract_key_points(serialize(data), 500),
    }


# ----------------------------------------------------------------------
# Growth guard
# ----------------------------------------------------------------------

_ENGINE_KEYS = (SUMMARY_KEY, COMPRESSION_SUMMARY_KEY, HISTORY_SUMMARY_KEY)


def strip_summaries(payload: Any) -> Any:
    """Remove engine-added summary keys at every depth."""
    if isinstance(payload, dict):
        return {k: strip_summaries(v) for k, v in payload.items() if k not in _ENGINE_KEYS}
    if isinstance(payload, list):
        return [strip_summaries(item) for item in payload]
    return payload


def enforce_no_growth(original: Any, compressed: Any) -> Any:
    """Never let compression enlarge a payload.

    Drops the engine's own summary blocks if they push the result over the
    original size, and falls back to a copy of the original if that is
    still not enough.
    """
    limit = payload_size(original)
    if payload_size(compressed) <= limit:
        return compressed
    stripped = strip_summaries(compressed)
    if payload_size(stripped) <= limit:
        return stripped
    return copy.deepcopy(original)
