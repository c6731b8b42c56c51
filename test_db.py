#!/usr/bin/env python3
"""
Save Store Tests
================

SQLite save rows: upsert, load, list, delete and the transactional commit.
"""

import pytest

from league_engine import db
from league_engine.errors import StorageError, ValidationError
from league_engine.generator import generate_seeded_league
from league_engine.models import Phase
from league_engine.season import simulate_next_scheduled_window, start_season


@pytest.fixture
def store(tmp_path):
    original = db.get_db_path()
    db.set_db_path(tmp_path / "saves.db")
    db.init_db()
    yield db
    db.set_db_path(original)


@pytest.fixture(scope="module")
def preseason():
    return generate_seeded_league(2468)


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

class TestCrud:
    def test_save_and_load(self, store, preseason):
        store.save_state("slot1", preseason, label="first")
        loaded = store.load_state("slot1")
        assert loaded is not None
        assert loaded.metadata.seed == preseason.metadata.seed
        assert loaded.phase is Phase.PRESEASON
        assert [t.id for t in loaded.teams] == [t.id for t in preseason.teams]

    def test_missing_returns_none(self, store):
        assert store.load_state("nothing-here") is None

    def test_saves_scoped_by_user(self, store, preseason):
        store.save_state("slot1", preseason, user_id="alice")
        assert store.load_state("slot1", user_id="bob") is None
        assert store.load_state("slot1", user_id="alice") is not None

    def test_upsert_overwrites(self, store, preseason):
        store.save_state("slot1", preseason, label="before")
        started = start_season(preseason)
        store.save_state("slot1", started, label="after")
        saves = store.list_saves()
        assert len(saves) == 1
        assert saves[0]["label"] == "after"
        assert saves[0]["phase"] == Phase.REGULAR_SEASON.value
        assert store.load_state("slot1").phase is Phase.REGULAR_SEASON

    def test_list_metadata(self, store, preseason):
        store.save_state("a", preseason)
        store.save_state("b", preseason)
        saves = store.list_saves()
        assert {s["save_key"] for s in saves} == {"a", "b"}
        assert all(s["data_size"] > 0 for s in saves)
        assert all(s["season_number"] == 1 for s in saves)

    def test_delete(self, store, preseason):
        store.save_state("gone", preseason)
        assert store.delete_save("gone") is True
        assert store.delete_save("gone") is False
        assert store.load_state("gone") is None


# ═══════════════════════════════════════════════════════════════
# TRANSACTIONAL COMMIT
# ═══════════════════════════════════════════════════════════════

class TestCommit:
    def test_commit_applies_operation(self, store, preseason):
        store.save_state("run", preseason)
        result = store.commit("run", start_season)
        assert result.phase is Phase.REGULAR_SEASON
        assert store.load_state("run").phase is Phase.REGULAR_SEASON

    def test_commit_chain(self, store, preseason):
        store.save_state("run", start_season(preseason))
        store.commit("run", lambda s: simulate_next_scheduled_window(s).state)
        loaded = store.load_state("run")
        assert sum(1 for f in loaded.fixtures if f.played) == 5

    def test_failed_operation_writes_nothing(self, store, preseason):
        store.save_state("run", preseason)
        before = store.list_saves()[0]["updated_at"]

        with pytest.raises(ValidationError):
            store.commit("run", lambda s: simulate_next_scheduled_window(s).state)

        assert store.load_state("run").phase is Phase.PRESEASON
        assert store.list_saves()[0]["updated_at"] == before

    def test_invalid_result_writes_nothing(self, store, preseason):
        store.save_state("run", preseason)

        def corrupt(state):
            broken = state.clone()
            broken.teams[0].budget_remaining = -1
            return broken

        with pytest.raises(ValidationError):
            store.commit("run", corrupt)
        assert store.load_state("run").teams[0].budget_remaining == preseason.teams[0].budget_remaining

    def test_missing_save(self, store):
        with pytest.raises(StorageError) as exc:
            store.commit("nope", start_season)
        assert "nope" in exc.value.message


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
