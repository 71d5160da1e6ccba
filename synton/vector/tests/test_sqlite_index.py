"""Tests for the sqlite-vec index."""

import pytest

from synton.errors import DimensionMismatchError
from synton.vector.sqlite_index import SqliteVecIndex


class TestSqliteVecIndex:
    @pytest.fixture
    def index(self, tmp_path):
        """Create a temporary index, skipping when sqlite-vec cannot load."""
        try:
            return SqliteVecIndex(tmp_path / "vectors.db", dimension=4)
        except AttributeError as exc:
            pytest.skip(f"sqlite3 lacks extension loading: {exc}")

    def test_add_and_search(self, index):
        index.upsert("concept:a", [1.0, 0.0, 0.0, 0.0], {"node_type": "concept"})
        index.upsert("fact:b", [0.0, 1.0, 0.0, 0.0], {"node_type": "fact"})

        hits = index.search([1.0, 0.0, 0.0, 0.0], 2)

        assert hits[0][0] == "concept:a"
        assert hits[0][1] == pytest.approx(1.0, abs=1e-5)
        assert hits[1][1] == pytest.approx(0.0, abs=1e-5)

    def test_upsert_replaces_vector(self, index):
        index.upsert("n", [1.0, 0.0, 0.0, 0.0])
        index.upsert("n", [0.0, 0.0, 1.0, 0.0])

        assert len(index) == 1
        hits = index.search([0.0, 0.0, 1.0, 0.0], 1)
        assert hits == [("n", pytest.approx(1.0, abs=1e-5))]

    def test_filter_by_type(self, index):
        index.upsert("a", [1.0, 0.0, 0.0, 0.0], {"node_type": "concept"})
        index.upsert("b", [0.9, 0.1, 0.0, 0.0], {"node_type": "fact"})
        index.upsert("c", [0.0, 1.0, 0.0, 0.0], {"node_type": "fact"})

        hits = index.search_with_filter([1.0, 0.0, 0.0, 0.0], {"node_type": "fact"}, 1)
        assert [node_id for node_id, _ in hits] == ["b"]

    def test_remove(self, index):
        index.upsert("gone", [1.0, 0.0, 0.0, 0.0])
        assert index.remove("gone")
        assert not index.remove("gone")
        assert index.search([1.0, 0.0, 0.0, 0.0], 5) == []

    def test_persists_across_instances(self, index):
        index.upsert("kept", [0.0, 0.0, 0.0, 1.0])
        reopened = SqliteVecIndex(index.db_path, dimension=4)
        assert len(reopened) == 1

    def test_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatchError):
            index.upsert("bad", [1.0, 0.0])
        with pytest.raises(DimensionMismatchError):
            index.search([1.0], 1)
