"""Unit tests for compression data types and context-level payload shapes."""

from datetime import datetime, timedelta, timezone

import pytest

from compression import (
    AgentContextData,
    CompressionConfig,
    CompressionPolicy,
    CompressionResult,
    ContextLevel,
    ContextRecord,
    GlobalContextData,
    ProjectContextData,
    TaskContextData,
    parse_context_data,
)
from compression.types import parse_level
from graph import ValidationError


class TestContextShapes:
    """Test parsing payloads into their level's typed shape."""

    def test_agent(self):
        """Test an agent payload with extra fields."""
        parsed = parse_context_data(
            ContextLevel.AGENT,
            {"agent_id": "a1", "agent_type": "coder", "history": [1, 2], "output": "x"},
        )

        assert isinstance(parsed, AgentContextData)
        assert parsed.state == {}
        assert parsed.history == [1, 2]
        assert parsed.extra == {"output": "x"}

    def test_agent_missing_id(self):
        """Test agent payloads need an agent_id."""
        with pytest.raises(ValidationError, match="agent_id"):
            parse_context_data(ContextLevel.AGENT, {"agent_type": "coder"})

    def test_agent_wrong_field_type(self):
        """Test agent history must be a list."""
        with pytest.raises(ValidationError, match="history"):
            AgentContextData.from_dict({"agent_id": "a", "agent_type": "t", "history": "nope"})

    def test_task(self):
        """Test a finished task."""
        parsed = TaskContextData.from_dict(
            {"task_id": "t1", "task_type": "build", "status": "failed", "error": "boom"}
        )

        assert parsed.is_finished
        assert parsed.error == "boom"

    @pytest.mark.parametrize(
        "overrides",
        [{"status": "paused"}, {"progress": 150}, {"progress": "half"}, {"error": 42}],
    )
    def test_task_invalid(self, overrides):
        """Test malformed task payloads are rejected."""
        data = {"task_id": "t1", "task_type": "build", "status": "running", **overrides}

        with pytest.raises(ValidationError):
            TaskContextData.from_dict(data)

    def test_project(self):
        """Test a project payload."""
        parsed = ProjectContextData.from_dict(
            {"project_name": "p", "project_path": "/src/p", "active_agents": ["a1"]}
        )
        assert parsed.active_agents == ["a1"]
        assert parsed.shared_state == {}

    def test_global(self):
        """Test global payloads have no required fields."""
        assert GlobalContextData.from_dict({}).active_projects == []

    def test_non_dict_rejected(self):
        """Test a payload that is not an object is rejected."""
        with pytest.raises(ValidationError):
            parse_context_data(ContextLevel.PROJECT, ["not", "a", "dict"])

    def test_parse_level(self):
        """Test level names map to ContextLevel."""
        assert parse_level("task") is ContextLevel.TASK
        assert parse_level(ContextLevel.AGENT) is ContextLevel.AGENT
        assert parse_level("session") is None
        assert parse_level(None) is None


class TestContextRecord:
    """Test ContextRecord."""

    def test_created_at_from_iso_string(self):
        """Test created_at parses ISO strings, including a Z suffix."""
        record = ContextRecord("r", "task", {}, {"created_at": "2024-05-01T10:00:00Z"})
        assert record.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_created_at_missing(self):
        """Test a record without created_at cannot be age-checked."""
        with pytest.raises(ValidationError):
            ContextRecord("r", "task", {}).created_at

    def test_round_trip(self):
        """Test to_dict / from_dict."""
        record = ContextRecord(
            "r", ContextLevel.AGENT, {"a": 1}, {"created_at": "2024-05-01T10:00:00"}, parent_id="p"
        )

        data = record.to_dict()
        restored = ContextRecord.from_dict(data)

        assert data["level"] == "agent"
        assert restored.parent_id == "p"
        assert restored.data == {"a": 1}


class TestCompressionConfig:
    """Test compression settings."""

    def test_policy_levels(self):
        """Test the default levels."""
        policy = CompressionPolicy()

        assert policy.level("low").preserve_ratio == 0.8
        assert policy.level("medium").preserve_ratio == 0.5
        assert policy.level("high").preserve_ratio == 0.2
        assert policy.age_threshold == timedelta(minutes=30)

    def test_unknown_level(self):
        """Test an unknown level name is rejected."""
        with pytest.raises(ValueError):
            CompressionPolicy().level("extreme")

    def test_from_config(self, set_config):
        """Test settings are read from Config."""
        set_config(
            COMPRESSION_LEVEL="high",
            COMPRESSION_AGE_THRESHOLD=60.0,
            COMPRESSION_PRESERVE_KEYS=["id"],
            COMPRESSION_BATCH_CHUNK_SIZE=5,
        )

        config = CompressionConfig.from_config()

        assert config.level == "high"
        assert config.policy.age_threshold == timedelta(seconds=60)
        assert config.preserve_keys == ["id"]
        assert config.batch_chunk_size == 5

    def test_result_ratio(self):
        """Test derived result metrics."""
        result = CompressionResult(
            record=ContextRecord("r", None, {}), strategy="smart", original_size=200, compressed_size=50
        )
        assert result.compression_ratio == 0.25
        assert result.bytes_saved == 150

    def test_result_ratio_empty(self):
        """Test the ratio of an empty payload."""
        result = CompressionResult(record=ContextRecord("r", None, None), strategy="none")
        assert result.compression_ratio == 1.0
