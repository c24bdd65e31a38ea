"""Tests for checkpoint types."""

import pytest

from checkpointdb import WRITES_IDX_MAP, Checkpoint, CheckpointConfig, ConfigurationError


class TestCheckpoint:
    def test_defaults(self):
        cp = Checkpoint(id="c1")
        assert cp.channel_values == {}
        assert cp.channel_versions == {}
        assert cp.versions_seen == {}
        assert cp.pending_sends == []
        assert cp.v == 1
        assert cp.ts

    def test_dict_roundtrip(self):
        cp = Checkpoint(
            id="c1",
            channel_values={"x": 1},
            channel_versions={"x": "00001"},
            versions_seen={"node": {"x": "00001"}},
            pending_sends=[{"node": "a"}],
            ts="2024-01-01T00:00:00+00:00",
        )
        assert Checkpoint.from_dict(cp.to_dict()) == cp

    def test_from_dict_tolerates_missing_fields(self):
        cp = Checkpoint.from_dict({"id": "c1"})
        assert cp.id == "c1"
        assert cp.channel_values == {}
        assert cp.pending_sends == []

    def test_from_dict_missing_ts_is_stable(self):
        first = Checkpoint.from_dict({"id": "c1"})
        second = Checkpoint.from_dict({"id": "c1"})
        assert first.ts == second.ts == ""


class TestCheckpointConfig:
    def test_ns_defaults_to_root(self):
        assert CheckpointConfig(thread_id="t1").ns == ""
        assert CheckpointConfig(thread_id="t1", checkpoint_ns="sub").ns == "sub"

    def test_coerce_mapping(self):
        cfg = CheckpointConfig.coerce({"thread_id": "t1", "checkpoint_id": "c1"})
        assert cfg == CheckpointConfig(thread_id="t1", checkpoint_id="c1")

    def test_coerce_passthrough_and_none(self):
        cfg = CheckpointConfig(thread_id="t1")
        assert CheckpointConfig.coerce(cfg) is cfg
        assert CheckpointConfig.coerce(None) == CheckpointConfig()

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError):
            CheckpointConfig.coerce("t1")

    def test_require(self):
        cfg = CheckpointConfig(thread_id="t1")
        assert cfg.require("thread_id", "put") == "t1"
        with pytest.raises(ConfigurationError) as exc_info:
            cfg.require("checkpoint_id", "put_writes")
        assert exc_info.value.missing == "checkpoint_id"
        assert exc_info.value.operation == "put_writes"

    def test_require_rejects_empty_string(self):
        with pytest.raises(ConfigurationError):
            CheckpointConfig(thread_id="").require("thread_id", "put")

    def test_frozen(self):
        cfg = CheckpointConfig(thread_id="t1")
        with pytest.raises(AttributeError):
            cfg.thread_id = "t2"  # type: ignore[misc]


class TestReservedChannels:
    def test_known_indexes(self):
        assert WRITES_IDX_MAP["__start__"] == 0
        assert WRITES_IDX_MAP["__error__"] == -1
        assert WRITES_IDX_MAP["__interrupt__"] == -3
