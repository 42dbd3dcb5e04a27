"""Tests for CLI commands that do not need a live cluster."""

import json
from unittest.mock import patch

import pytest

from search_index_mcp.cli import _format_time, create, load
from search_index_mcp.index import IndexManager
from search_index_mcp.store import RecordStore


class TestFormatTime:
    def test_seconds(self):
        assert _format_time(3.0) == "3.0s"

    def test_minutes(self):
        assert _format_time(125.0) == "2m 5.0s"


class TestLoad:
    """Tests for the load command."""

    def test_loads_jsonl_into_store(self, tmp_path, monkeypatch, capsys):
        db = tmp_path / "records.db"
        monkeypatch.setenv("SEARCH_INDEX_STORE_PATH", str(db))
        data = tmp_path / "records.jsonl"
        data.write_text(
            "\n".join(
                json.dumps(r)
                for r in [
                    {"id": "u1", "type": "user", "fields": {"name": "Ada"}},
                    {"id": "t1", "type": "tag"},
                ]
            )
            + "\n\n"
        )

        load(data, alias="app")

        assert "Loaded 2 records into app" in capsys.readouterr().out
        store = RecordStore(db_path=db)
        try:
            assert store.count("app") == 2
        finally:
            store.close()

    def test_bad_line_exits_non_zero(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SEARCH_INDEX_STORE_PATH", str(tmp_path / "r.db"))
        data = tmp_path / "bad.jsonl"
        data.write_text('{"type": "user"}\n')

        with pytest.raises(SystemExit) as excinfo:
            load(data, alias="app")
        assert excinfo.value.code == 1

    @pytest.mark.parametrize(
        "line",
        [
            '["u1", "user"]',
            '"u1"',
            '{"id": "u1", "type": "user", "fields": [1]}',
            '{"id": "u1", "type": "user", "fields": "name"}',
        ],
    )
    def test_non_object_record_is_rejected(
        self, tmp_path, monkeypatch, capsys, line
    ):
        """Lines that parse but are not record objects exit cleanly."""
        db = tmp_path / "r.db"
        monkeypatch.setenv("SEARCH_INDEX_STORE_PATH", str(db))
        data = tmp_path / "bad.jsonl"
        data.write_text('{"id": "ok", "type": "user"}\n' + line + "\n")

        with pytest.raises(SystemExit) as excinfo:
            load(data, alias="app")

        assert excinfo.value.code == 1
        assert "Bad record on line 2" in capsys.readouterr().err
        assert not db.exists()


class TestCreate:
    """Tests for the create command."""

    def test_create_reports_new_index(self, cluster, capsys):
        with patch(
            "search_index_mcp.cli._manager", return_value=IndexManager(cluster)
        ):
            create("things")

        assert "Created things1 for alias things" in capsys.readouterr().out
        assert cluster.aliases["things"] == {"things1"}

    def test_duplicate_exits_non_zero(self, aliased_cluster, capsys):
        with patch(
            "search_index_mcp.cli._manager",
            return_value=IndexManager(aliased_cluster),
        ):
            with pytest.raises(SystemExit):
                create("app")

        assert "already_exists" in capsys.readouterr().err
