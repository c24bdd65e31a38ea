"""Tests for [tool.checkpointdb] configuration."""

import textwrap

import pytest

from checkpointdb import JsonSerializer, PickleSerializer, SqliteCheckpointer
from checkpointdb._config import CheckpointdbConfig, find_pyproject, load_config


def _write_pyproject(directory, body):
    pyproject = directory / "pyproject.toml"
    pyproject.write_text(textwrap.dedent(body))
    return pyproject


class TestFindPyproject:
    def test_exists(self, tmp_path):
        pyproject = _write_pyproject(tmp_path, "[project]\nname = 'test'\n")
        assert find_pyproject(tmp_path) == pyproject

    def test_walks_up(self, tmp_path):
        pyproject = _write_pyproject(tmp_path, "[project]\nname = 'test'\n")
        child = tmp_path / "src" / "pkg"
        child.mkdir(parents=True)
        assert find_pyproject(child) == pyproject


class TestLoadConfig:
    def test_full_section(self, tmp_path):
        _write_pyproject(
            tmp_path,
            """\
            [project]
            name = "test"

            [tool.checkpointdb]
            db = "state/checkpoints.db"
            pool_size = 3
            busy_timeout = 1.5
            serializer = "pickle"
            allow_pickle = true
            """,
        )
        config = load_config(tmp_path)
        assert config.db == str(tmp_path.resolve() / "state" / "checkpoints.db")
        assert config.pool_size == 3
        assert config.busy_timeout == 1.5
        assert config.serializer == "pickle"
        assert config.allow_pickle is True

    def test_absolute_and_memory_paths_kept(self, tmp_path):
        target = tmp_path / "abs.db"
        _write_pyproject(tmp_path, f'[tool.checkpointdb]\ndb = "{target.as_posix()}"\n')
        assert load_config(tmp_path).db == target.as_posix()

        _write_pyproject(tmp_path, '[tool.checkpointdb]\ndb = ":memory:"\n')
        assert load_config(tmp_path).db == ":memory:"

    def test_missing_section(self, tmp_path):
        _write_pyproject(tmp_path, "[project]\nname = 'test'\n")
        assert load_config(tmp_path) == CheckpointdbConfig()

    def test_invalid_serializer(self, tmp_path):
        _write_pyproject(tmp_path, '[tool.checkpointdb]\nserializer = "yaml"\n')
        with pytest.raises(ValueError, match="serializer"):
            load_config(tmp_path)

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError, match="pool_size"):
            CheckpointdbConfig(pool_size=0)


class TestMakeSerializer:
    def test_json_default(self):
        assert isinstance(CheckpointdbConfig().make_serializer(), JsonSerializer)

    def test_pickle_requires_opt_in(self):
        with pytest.raises(ValueError, match="allow_pickle"):
            CheckpointdbConfig(serializer="pickle").make_serializer()

    def test_pickle_with_opt_in(self):
        serializer = CheckpointdbConfig(serializer="pickle", allow_pickle=True).make_serializer()
        assert isinstance(serializer, PickleSerializer)


class TestFromConfig:
    async def test_builds_checkpointer(self, tmp_path):
        pytest.importorskip("aiosqlite")
        _write_pyproject(tmp_path, '[tool.checkpointdb]\ndb = "cp.db"\npool_size = 2\n')
        saver = SqliteCheckpointer.from_config(tmp_path)
        try:
            assert saver.path == str(tmp_path.resolve() / "cp.db")
            await saver.setup()
            assert (tmp_path / "cp.db").exists()
        finally:
            await saver.close()
