"""Unit tests for the pure compression functions."""

import copy

import pytest

from compression import ContextLevel
from compression import strategies
from compression.types import COMPRESSION_SUMMARY_KEY, DEFAULT_IMPORTANCE_WEIGHTS, SUMMARY_KEY
from graph import GraphAnalysis, ValidationError

MUST_KEEP = ["id", "status", "error", "output"]


def make_analysis(relationship_count=2, importance=0.5, centrality=0.5):
    return GraphAnalysis(
        context_id="ctx",
        relationship_count=relationship_count,
        dependency_count=0,
        impacted_count=0,
        importance=importance,
        centrality_score=centrality,
    )


class TestMeasurement:
    """Test size and token estimates."""

    def test_payload_size_is_compact_utf8(self):
        """Test size counts compact JSON bytes."""
        assert strategies.payload_size({"a": "bcd"}) == len('{"a":"bcd"}')
        assert strategies.payload_size("é") == 4

    def test_estimate_tokens(self):
        """Test tokens are bytes / 4 rounded up."""
        assert strategies.estimate_tokens({"a": "bcd"}) == 3
        assert strategies.estimate_tokens("") == 1

    def test_non_json_values(self):
        """Test values without a JSON form are measured as strings."""
        assert strategies.payload_size({"s": {1}}) == len('{"s":"{1}"}')


class TestText:
    """Test text shortening."""

    def test_short_text_unchanged(self):
        """Test text within the limit is returned as is."""
        assert strategies.extract_key_points("hello", 10) == "hello"

    def test_head_and_tail(self):
        """Test long text keeps its head and tail around a marker."""
        text = "a" * 10 + "m" * 80 + "z" * 10

        result = strategies.extract_key_points(text, 20)

        assert result == "a" * 10 + "...[80 chars omitted]..." + "z" * 10
        assert len(result) < len(text)

    def test_never_longer(self):
        """Test the marker is not applied when it would grow the text."""
        assert strategies.extract_key_points("abcdefghij", 4) == "abcdefghij"

    def test_truncate_text_nested(self):
        """Test every long string is shortened at any depth."""
        payload = {"a": "x" * 100, "b": [{"c": "y" * 100}], "n": 5}

        result = strategies.truncate_text(payload, 20)

        assert result["a"].startswith("x" * 10 + "...[80 chars omitted]")
        assert result["b"][0]["c"].endswith("omitted]..." + "y" * 10)
        assert result["n"] == 5
        assert payload["a"] == "x" * 100


class TestKeyPreservation:
    """Test ratio-based key preservation."""

    def test_keeps_must_keep_and_smallest(self):
        """Test must-keep keys stay and smaller values win the rest."""
        obj = {"id": 1, "a": "xx", "b": "x", "c": "xxx", "status": "ok"}

        result = strategies.preserve_important_keys(obj, 0.5, ["id", "status"])

        assert set(result) == {"id", "status", "a", "b", SUMMARY_KEY}
        assert result[SUMMARY_KEY] == "1 keys omitted"

    def test_nothing_dropped(self):
        """Test no summary when every key fits."""
        result = strategies.preserve_important_keys({"a": 1, "b": 2}, 1.0, [])
        assert result == {"a": 1, "b": 2}

    def test_non_dict(self):
        """Test non-objects are returned unchanged."""
        assert strategies.preserve_important_keys([1, 2], 0.5, []) == [1, 2]

    def test_history_fifty_entries(self):
        """Test 50 entries at ratio 0.2 keep the first 2 and the last 8."""
        history = list(range(50))

        result = strategies.summarize_history(history, 0.2)

        assert len(result) == 10
        assert result == [0, 1] + list(range(42, 50))

    def test_history_small_ratio_keeps_first_two(self):
        """Test the first two entries survive even a tiny ratio."""
        assert strategies.summarize_history(list(range(10)), 0.1) == [0, 1]

    def test_history_short(self):
        """Test a history that already fits is kept whole."""
        assert strategies.summarize_history([1, 2], 0.2) == [1, 2]


class TestLevelSummaries:
    """Test level-specific summaries."""

    def test_agent(self):
        """Test agent summaries keep identity, reduce state and history."""
        data = {
            "agent_id": "a1",
            "agent_type": "coder",
            "state": {"status": "busy", **{f"k{i}": i for i in range(10)}},
            "history": list(range(50)),
            "capabilities": ["edit"],
            "output": "result",
            "scratch": "x" * 100,
        }

        result = strategies.summarize_data(ContextLevel.AGENT, data, 0.2, MUST_KEEP)

        assert result["agent_id"] == "a1"
        assert result["state"]["status"] == "busy"
        assert result["state"][SUMMARY_KEY] == "8 keys omitted"
        assert len(result["history"]) == 10
        assert result["history_summary"] == "50 entries, 10 retained"
        assert result["output"] == "result"
        assert "scratch" not in result

    def test_finished_task_keeps_output(self):
        """Test completed tasks keep their whole output."""
        output = {f"k{i}": i for i in range(10)}
        data = {"task_id": "t", "task_type": "x", "status": "completed", "output": output}

        result = strategies.summarize_data(ContextLevel.TASK, data, 0.2, MUST_KEEP)

        assert result["output"] == output

    def test_running_task_reduces_output(self):
        """Test unfinished task output is reduced like any object."""
        output = {f"k{i}": i for i in range(10)}
        data = {"task_id": "t", "task_type": "x", "status": "running", "output": output}

        result = strategies.summarize_data(ContextLevel.TASK, data, 0.2, MUST_KEEP)

        assert len([k for k in result["output"] if k != SUMMARY_KEY]) == 2

    def test_project(self):
        """Test project summaries reduce config and shared state."""
        data = {
            "project_name": "p",
            "project_path": "/p",
            "config": {f"c{i}": i for i in range(10)},
            "shared_state": {f"s{i}": i for i in range(10)},
        }

        result = strategies.summarize_data(ContextLevel.PROJECT, data, 0.5, MUST_KEEP)

        assert result["config"][SUMMARY_KEY] == "5 keys omitted"
        assert result["shared_state"][SUMMARY_KEY] == "5 keys omitted"

    def test_global_never_compressed(self):
        """Test global payloads come back unchanged."""
        data = {"system_config": {f"k{i}": i for i in range(10)}}
        assert strategies.summarize_data(ContextLevel.GLOBAL, data, 0.2, MUST_KEEP) == data

    def test_unknown_level_is_generic(self):
        """Test unknown levels get generic key preservation."""
        data = {"id": "x", **{f"k{i}": i for i in range(4)}}

        result = strategies.summarize_data(None, data, 0.5, MUST_KEEP)

        assert result["id"] == "x"
        assert result[SUMMARY_KEY] == "2 keys omitted"

    def test_malformed_shape(self):
        """Test a payload that does not match its level is rejected."""
        with pytest.raises(ValidationError):
            strategies.summarize_data(ContextLevel.TASK, {"task_id": "t"}, 0.5, MUST_KEEP)


class TestSmart:
    """Test importance-weighted compression."""

    def test_importance_lookup(self):
        """Test exact match, substring match and default."""
        weights = DEFAULT_IMPORTANCE_WEIGHTS

        assert strategies.get_importance_weight("temp_data", weights) == 0.1
        assert strategies.get_importance_weight("last_error_message", weights) == 1.0
        assert strategies.get_importance_weight("StatusCode", weights) == 1.0
        assert strategies.get_importance_weight("unknown", weights) == 0.5

    def test_keeps_most_important(self):
        """Test the highest-weighted keys are kept."""
        data = {"temp_data": 1, "history": 2, "state": 3, "agent_id": 4}

        result = strategies.smart_compress(data, 0.5)

        assert [k for k in result if k != COMPRESSION_SUMMARY_KEY] == ["agent_id", "state"]
        assert result[COMPRESSION_SUMMARY_KEY] == {
            "original_keys": 4,
            "preserved_keys": 2,
            "dropped_keys": 2,
            "dropped_key_names": ["temp_data", "history"],
        }

    def test_must_keep_beats_ratio(self):
        """Test must-keep keys survive a tiny ratio."""
        data = {"massive_data": "x", "output": "o", "error": "e", "notes": "n"}

        result = strategies.smart_compress(data, 0.01, preserve_keys=MUST_KEEP)

        assert "output" in result and "error" in result
        assert "massive_data" not in result

    def test_keeps_at_least_one(self):
        """Test at least one key survives."""
        result = strategies.smart_compress({"a": 1, "b": 2}, 0.0)
        assert len([k for k in result if k != COMPRESSION_SUMMARY_KEY]) == 1

    def test_recurses(self):
        """Test nested objects are compressed with the same ratio."""
        data = {"state": {"status": "ok", "logs": 1, "temp_data": 2, "config": 3}}

        result = strategies.smart_compress(data, 0.5)

        assert set(result["state"]) == {"status", "config", COMPRESSION_SUMMARY_KEY}

    def test_lists_keep_most_recent(self):
        """Test lists keep their last items."""
        assert strategies.smart_compress(list(range(8)), 0.25) == [6, 7]
        assert strategies.smart_compress([], 0.3) == []

    def test_long_strings(self):
        """Test strings over the text limit shrink proportionally."""
        result = strategies.smart_compress({"output": "a" * 2000}, 0.5, max_text_length=1000)

        assert result["output"] == "a" * 500 + "...[1000 chars omitted]..." + "a" * 500

    def test_input_not_mutated(self):
        """Test the input payload is left untouched."""
        data = {"state": {"a": [1, 2, 3], "b": "x"}, "logs": list(range(10))}
        before = copy.deepcopy(data)

        strategies.smart_compress(data, 0.3)

        assert data == before


class TestGraphAware:
    """Test graph-aware compression."""

    def test_enhance_weights(self):
        """Test weights are boosted except protected fields."""
        weights = strategies.enhance_weights(make_analysis(relationship_count=0))

        assert weights["history"] == pytest.approx(0.3 * 1.6)
        assert weights["error"] == 1.0
        assert weights["capabilities"] == 1.0
        assert "parent_id" not in weights

    def test_relationship_fields_added(self):
        """Test connected nodes weight relationship data."""
        weights = strategies.enhance_weights(make_analysis(relationship_count=3))

        assert weights["parent_id"] == 0.9
        assert weights["references"] == 0.7

    def test_relationship_key_boost(self):
        """Test relationship-named keys get 1.3x on connected nodes."""
        weights = strategies.enhance_weights(make_analysis(relationship_count=0))

        assert strategies.graph_weight("parent_ref", weights, make_analysis(1)) == pytest.approx(0.65)
        assert strategies.graph_weight("parent_ref", weights, make_analysis(0)) == 0.5

    def test_centrality_keeps_more_items(self):
        """Test central nodes retain more list items than smart compression."""
        items = list(range(10))

        assert len(strategies.smart_compress(items, 0.5)) == 5
        assert len(strategies.graph_aware_compress(items, 0.5, make_analysis())) == 6

    def test_summary_carries_graph_metrics(self):
        """Test the drop summary records the graph metrics."""
        data = {f"k{i}": i for i in range(10)}

        result = strategies.graph_aware_compress(data, 0.2, make_analysis())

        summary = result[COMPRESSION_SUMMARY_KEY]
        assert summary["graph_aware"] is True
        assert summary["centrality_score"] == 0.5
        assert summary["relationship_count"] == 2
        assert summary["preserved_keys"] == 3

    def test_must_keep(self):
        """Test must-keep keys survive graph-aware compression."""
        data = {"status": "s", "id": "i", "logs": "l", "temp_data": "t", "x": "y"}

        result = strategies.graph_aware_compress(data, 0.01, make_analysis(), preserve_keys=MUST_KEEP)

        assert "status" in result and "id" in result


class TestEmergency:
    """Test emergency reduction."""

    def test_agent(self):
        """Test agents keep identity, status and a history marker."""
        data = {
            "agent_id": "a1",
            "agent_type": "coder",
            "state": {"status": "failed", "error": "boom", "big": "x" * 1000},
            "history": list(range(30)),
            "output": {"text": "y" * 1000},
        }

        result = strategies.emergency_data(ContextLevel.AGENT, data)

        assert result["agent_id"] == "a1"
        assert result["state"]["status"] == "failed"
        assert result["state"]["error"] == "boom"
        assert "big" not in result["state"]
        assert result["history"] == ["Emergency compressed - 30 entries removed"]
        assert len(result["output"]["result"]) < 300

    def test_task(self):
        """Test tasks keep status, error and a truncated output."""
        data = {
            "task_id": "t",
            "task_type": "build",
            "status": "failed",
            "error": "boom",
            "input": {"files": ["f"] * 500},
            "output": "z" * 5000,
        }

        result = strategies.emergency_data(ContextLevel.TASK, data)

        assert result["status"] == "failed"
        assert result["error"] == "boom"
        assert "chars omitted" in result["output"]
        assert "chars omitted" in result["input"]["summary"]

    def test_project(self):
        """Test projects keep name, path and agents only."""
        data = {"project_name": "p", "project_path": "/p", "config": {"a": 1}, "active_agents": ["a"]}

        result = strategies.emergency_data(ContextLevel.PROJECT, data)

        assert result["config"] == {"emergency": True}
        assert result["shared_state"] == {"emergency": "summarized"}

    def test_unknown_level(self):
        """Test other records collapse to a summary."""
        result = strategies.emergency_data(None, {"anything": "x" * 2000})

        assert result["summary"] == "Emergency compressed context"
        assert result["original_level"] is None
        assert len(result["critical_data"]) < 600


class TestNoGrowth:
    """Test the growth guard."""

    def test_smaller_result_kept(self):
        """Test a smaller result passes through."""
        assert strategies.enforce_no_growth({"a": "x" * 10}, {"a": "x"}) == {"a": "x"}

    def test_summary_blocks_dropped(self):
        """Test engine summaries are stripped when they cause growth."""
        result = strategies.enforce_no_growth({"a": 1, "b": 2}, {"a": 1, SUMMARY_KEY: "1 keys omitted"})
        assert result == {"a": 1}

    def test_falls_back_to_original(self):
        """Test the original is returned when nothing else fits."""
        original = {"a": 1}
        result = strategies.enforce_no_growth(original, {"b": "x" * 100})

        assert result == original
        assert result is not original
