"""Tests for working memory and snapshots."""

from __future__ import annotations

import json

import pytest
import yaml

from leap_engine import Agenda, FactMetadata, FactStore, MissingKindError, Task, TaskKind
from leap_engine.fact_store import read_facts_file

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> FactStore:
    return FactStore()


class TestAssert:
    def test_assigns_monotonic_ids(self, store):
        a = store.assert_fact({"kind": "user", "name": "a"})
        b = store.assert_fact({"kind": "user", "name": "b"})
        assert (a.fact.id, b.fact.id) == (1, 2)
        assert a.fact["_id"] == 1
        assert a.fact.kind == "user"

    def test_does_not_mutate_input(self, store):
        data = {"kind": "user", "name": "a"}
        store.assert_fact(data)
        assert data == {"kind": "user", "name": "a"}

    def test_facts_are_read_only(self, store):
        entry = store.assert_fact({"kind": "user"})
        with pytest.raises(TypeError):
            entry.fact["kind"] = "other"

    @pytest.mark.parametrize("data", [{}, {"kind": ""}, {"kind": "  "}, {"kind": 3}, None])
    def test_missing_kind_rejected(self, store, data):
        with pytest.raises(MissingKindError):
            store.assert_fact(data)
        assert len(store) == 0

    def test_metadata_defaults_to_non_logical(self, store):
        entry = store.assert_fact({"kind": "x"})
        assert entry.metadata == FactMetadata(logical=False, produced_by=None)


class TestRetract:
    def test_ids_never_reused(self, store):
        first = store.assert_fact({"kind": "x"})
        store.retract(first.fact.id)
        second = store.assert_fact({"kind": "x"})
        assert second.fact.id == 2

    def test_retract_unknown_returns_none(self, store):
        assert store.retract(99) is None

    def test_empty_kind_bucket_dropped(self, store):
        entry = store.assert_fact({"kind": "x"})
        store.retract(entry.fact.id)
        assert "x" not in store.kinds()
        assert list(store.get_facts_by_kind("x")) == []
        assert entry.fact.id not in store

    def test_clear_resets_counter(self, store):
        store.assert_fact({"kind": "x"})
        store.clear()
        assert len(store) == 0
        assert store.assert_fact({"kind": "x"}).fact.id == 1


class TestKindIndex:
    def test_unknown_kind_is_empty(self, store):
        assert list(store.get_facts_by_kind("nothing")) == []

    def test_view_is_restartable(self, store):
        store.assert_fact({"kind": "x", "n": 1})
        store.assert_fact({"kind": "x", "n": 2})
        store.assert_fact({"kind": "y", "n": 3})
        view = store.get_facts_by_kind("x")
        assert [f["n"] for f in view] == [1, 2]
        assert [f["n"] for f in view] == [1, 2]


class TestSnapshots:
    def test_to_dict(self, store):
        store.assert_fact({"kind": "x", "tags": ("a", "b")}, FactMetadata(logical=True, produced_by=4))
        snapshot = store.to_dict()
        assert snapshot == {
            "facts": [
                {"fact": {"kind": "x", "tags": ["a", "b"], "_id": 1}, "logical": True, "produced_by": 4}
            ]
        }

    def test_json_round_trip_through_reader(self, store, tmp_path):
        store.assert_fact({"kind": "user", "name": "Ann"})
        path = tmp_path / "facts.json"
        store.to_json(path)
        assert json.loads(path.read_text())["facts"][0]["fact"]["name"] == "Ann"
        assert read_facts_file(path) == [{"kind": "user", "name": "Ann"}]

    def test_yaml_snapshot(self, store, tmp_path):
        store.assert_fact({"kind": "user", "name": "Ann"})
        path = tmp_path / "facts.yaml"
        store.to_yaml(path)
        assert yaml.safe_load(path.read_text())["facts"][0]["fact"]["_id"] == 1

    def test_reads_plain_fact_list(self, tmp_path):
        path = tmp_path / "seed.yml"
        path.write_text("- kind: user\n  name: Ann\n- kind: user\n  name: Bob\n")
        assert read_facts_file(path) == [
            {"kind": "user", "name": "Ann"},
            {"kind": "user", "name": "Bob"},
        ]

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "facts.csv"
        path.write_text("kind\nuser\n")
        with pytest.raises(ValueError):
            read_facts_file(path)


class TestAgenda:
    def test_fifo(self, store):
        agenda = Agenda()
        a = store.assert_fact({"kind": "x"}).fact
        b = store.assert_fact({"kind": "x"}).fact
        agenda.push(Task(TaskKind.ASSERT, a))
        agenda.push(Task(TaskKind.RETRACT, b))
        assert agenda.has_tasks and len(agenda) == 2
        assert agenda.shift() == Task(TaskKind.ASSERT, a)
        assert agenda.shift().kind is TaskKind.RETRACT
        assert agenda.shift() is None
        assert not agenda.has_tasks

    def test_clear(self, store):
        agenda = Agenda()
        agenda.push(Task(TaskKind.ASSERT, store.assert_fact({"kind": "x"}).fact))
        agenda.clear()
        assert not agenda.has_tasks
