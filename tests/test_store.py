"""
Tests for the embedding store and catalog store lifecycle.

Tests:
    1. put/get round-trips a vector exactly
    2. put on an existing id replaces the vector
    3. get_embeddings omits ids without a vector
    4. delete_embedding reports whether a row existed
    5. Deleting a command cascades to its embedding
    6. CatalogStore open/close/session semantics
"""

import pytest
from sqlalchemy import text

from cmdsearch.db import dal
from cmdsearch.db.session import CatalogStore
from cmdsearch.search.store import (
    delete_embedding,
    embedding_ids,
    get_embedding,
    get_embeddings,
    put_embedding,
)


def _insert(db, name, category="clusterxl", **fields):
    return dal.insert_command({"name": name, "category": category, **fields}, db=db)["id"]


class TestEmbeddingStore:
    def test_put_then_get(self, db):
        record_id = _insert(db, "cphaprob state")
        vector = [0.125, -3.5, 1e-9, 42.0]

        put_embedding(record_id, vector, db)

        assert get_embedding(record_id, db) == vector

    def test_get_absent_is_none(self, db):
        assert get_embedding(404, db) is None

    def test_put_replaces_existing(self, db):
        record_id = _insert(db, "cphaprob state")
        put_embedding(record_id, [1.0, 0.0], db)
        put_embedding(record_id, [0.0, 1.0, 0.5], db)

        assert get_embedding(record_id, db) == [0.0, 1.0, 0.5]
        assert embedding_ids(db) == [record_id]
        dimensions = db.execute(
            text("SELECT dimensions FROM command_embeddings WHERE command_id = :id"),
            {"id": record_id},
        ).scalar_one()
        assert dimensions == 3

    def test_get_embeddings_omits_missing(self, db):
        first = _insert(db, "fw stat")
        second = _insert(db, "fw ctl pstat")
        put_embedding(first, [1.0, 2.0], db)

        found = get_embeddings([first, second, first], db)

        assert found == {first: [1.0, 2.0]}

    def test_get_embeddings_empty(self, db):
        assert get_embeddings([], db) == {}

    def test_delete_embedding(self, db):
        record_id = _insert(db, "cpstat os")
        put_embedding(record_id, [1.0], db)

        assert delete_embedding(record_id, db) is True
        assert delete_embedding(record_id, db) is False
        assert get_embedding(record_id, db) is None

    def test_command_delete_cascades(self, db):
        record_id = _insert(db, "cpstat os")
        put_embedding(record_id, [1.0, 1.0], db)
        db.commit()

        assert dal.delete_command(record_id, db=db) is True
        db.commit()

        assert get_embedding(record_id, db) is None
        assert dal.orphaned_embedding_ids(db=db) == []


class TestCatalogStore:
    def test_session_requires_open(self):
        store = CatalogStore("sqlite://")
        assert store.is_open is False
        with pytest.raises(RuntimeError):
            with store.session():
                pass

    def test_open_is_idempotent_and_close_disposes(self):
        store = CatalogStore("sqlite://")
        assert store.open() is store.open()
        assert store.is_open
        store.close()
        store.close()
        assert store.is_open is False
        with pytest.raises(RuntimeError):
            store.engine

    def test_context_manager(self):
        with CatalogStore("sqlite://") as store:
            with store.session() as db:
                assert dal.list_commands(db=db) == []
        assert store.is_open is False

    def test_session_rolls_back_on_error(self, store):
        with pytest.raises(ValueError):
            with store.session() as db:
                _insert(db, "fw unloadlocal")
                raise ValueError("abort")

        with store.session() as db:
            assert dal.list_commands(db=db) == []

    def test_session_commits_on_success(self, store):
        with store.session() as db:
            _insert(db, "fw unloadlocal")

        with store.session() as db:
            assert [c["name"] for c in dal.list_commands(db=db)] == ["fw unloadlocal"]

    def test_schema_includes_fts_index(self, store):
        with store.session() as db:
            tables = db.execute(
                text("SELECT name FROM sqlite_master WHERE type IN ('table', 'trigger')")
            ).scalars().all()
        assert {"commands", "command_embeddings", "commands_fts", "commands_fts_ai",
                "commands_fts_ad", "commands_fts_au"} <= set(tables)

    def test_file_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'commands.db'}"
        with CatalogStore(url) as store:
            with store.session() as db:
                _insert(db, "cphaprob state")
        with CatalogStore(url) as store:
            with store.session() as db:
                assert len(dal.list_commands(db=db)) == 1
