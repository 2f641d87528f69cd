"""
Tests for hybrid search.

Tests:
    1. Lexical matches are ranked by cosine similarity with display metadata
    2. Queries whose keywords match nothing still rank the non-deprecated corpus
    3. An empty list is returned when nothing meets the threshold
    4. Parameter validation (empty query, limit, threshold)
    5. Provider failure and corrupt stored vectors surface as typed errors
    6. advanced_search filters ranked results by metadata
"""

import pytest

from cmdsearch.catalog import manager
from cmdsearch.errors import DimensionMismatch, RetrievalUnavailable, ValidationError
from cmdsearch.search.search import advanced_search, search_commands
from cmdsearch.search.store import put_embedding
from conftest import FakeEmbeddingClient, command_payload


def _unit(index: int, dimensions: int = 8) -> list[float]:
    vector = [0.0] * dimensions
    vector[index] = 1.0
    return vector


CATALOG = [
    # (payload, vector of "name description")
    (command_payload("cphaprob state", description="Show ClusterXL cluster state"), _unit(0)),
    (
        command_payload(
            "fw ctl pstat",
            category="firewall",
            description="Kernel memory statistics",
            device="firewall",
            version="R81",
        ),
        _unit(1),
    ),
    (
        command_payload(
            "cpstat os",
            category="system",
            description="Operating system status",
            device="management",
            mode="clish",
            version="R80.40",
        ),
        _unit(2),
    ),
    (
        command_payload(
            "cphaprob list", description="Legacy cluster state listing", deprecated=True
        ),
        _unit(0),
    ),
]


@pytest.fixture()
def seeded(db):
    """Catalog with one-hot vectors per command; returns (client, ids by name)."""
    vectors = {
        f"{payload['name']} {payload['description']}": vector for payload, vector in CATALOG
    }
    client = FakeEmbeddingClient(vectors=vectors)
    ids = {}
    for payload, _ in CATALOG:
        ids[payload["name"]] = manager.add_command(payload, db, client)["id"]
    return client, ids


class TestSearchCommands:
    def test_ranked_results_with_metadata(self, db, seeded):
        client, ids = seeded
        client.vectors["which kernel memory counters"] = [0.2, 0.9, 0.1, 0, 0, 0, 0, 0]

        results = search_commands("which kernel memory counters", db, client)

        assert results[0]["id"] == ids["fw ctl pstat"]
        assert results[0]["category"] == "firewall"
        assert results[0]["type"] == "query"
        assert set(results[0]) == {
            "id", "name", "description", "arguments", "category",
            "mode", "type", "device", "impact", "score",
        }
        assert all(r["score"] >= 0.3 for r in results)
        scores = [r["score"] for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_no_keyword_match_falls_back_to_active_corpus(self, db, seeded):
        client, ids = seeded
        client.vectors["xyzzy plugh"] = _unit(0)

        results = search_commands("xyzzy plugh", db, client)

        # The deprecated command has the same vector but is not a fallback candidate
        assert [r["id"] for r in results] == [ids["cphaprob state"]]
        assert results[0]["score"] == pytest.approx(1.0)

    def test_stopword_only_query_falls_back(self, db, seeded):
        client, ids = seeded
        client.vectors["how do I see it"] = _unit(2)

        results = search_commands("how do I see it", db, client)

        assert [r["id"] for r in results] == [ids["cpstat os"]]

    def test_nothing_above_threshold_is_empty(self, db, seeded):
        client, _ = seeded
        client.vectors["vpn tunnel"] = _unit(5)

        assert search_commands("vpn tunnel", db, client) == []

    def test_limit_truncates(self, db, seeded):
        client, _ = seeded
        client.vectors["overall health"] = [1.0, 1.0, 1.0, 0, 0, 0, 0, 0]

        results = search_commands("overall health", db, client, limit=2, threshold=0.1)

        assert len(results) == 2

    def test_query_embedded_verbatim(self, db, seeded):
        client, _ = seeded
        search_commands("Cluster state?", db, client)
        assert client.calls[-1] == ["Cluster state?"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query": ""},
            {"query": "   "},
            {"query": "cluster", "limit": 0},
            {"query": "cluster", "limit": 51},
            {"query": "cluster", "threshold": 1.5},
            {"query": "cluster", "threshold": -0.1},
        ],
    )
    def test_invalid_parameters(self, db, kwargs):
        with pytest.raises(ValidationError):
            search_commands(db=db, client=FakeEmbeddingClient(), **kwargs)

    def test_provider_failure(self, db, seeded):
        failing = FakeEmbeddingClient(fail_when=lambda text: True)

        with pytest.raises(RetrievalUnavailable):
            search_commands("cluster state", db, failing)

    def test_corrupt_vector_surfaces(self, db, seeded):
        client, ids = seeded
        put_embedding(ids["cphaprob state"], [1.0, 0.0, 0.0], db)
        db.commit()

        with pytest.raises(DimensionMismatch) as exc_info:
            search_commands("cluster state", db, client)

        assert exc_info.value.record_id == ids["cphaprob state"]

    def test_empty_catalog(self, db):
        assert search_commands("cluster state", db, FakeEmbeddingClient()) == []


class TestAdvancedSearch:
    QUERY = "overall appliance health"
    QUERY_VECTOR = [1.0, 1.0, 1.0, 0, 0, 0, 0, 0]

    def test_filters_by_device(self, db, seeded):
        client, ids = seeded
        client.vectors[self.QUERY] = self.QUERY_VECTOR

        results = advanced_search(self.QUERY, db, client, filters={"device": "management"})

        assert [r["id"] for r in results] == [ids["cpstat os"]]

    def test_filters_by_category_and_mode(self, db, seeded):
        client, ids = seeded
        client.vectors[self.QUERY] = self.QUERY_VECTOR

        results = advanced_search(
            self.QUERY, db, client, filters={"category": "clusterxl", "mode": "expert"}
        )

        assert [r["id"] for r in results] == [ids["cphaprob state"]]

    def test_filters_by_version(self, db, seeded):
        client, ids = seeded
        client.vectors[self.QUERY] = self.QUERY_VECTOR

        results = advanced_search(self.QUERY, db, client, filters={"version": "R81"})

        assert [r["id"] for r in results] == [ids["fw ctl pstat"]]

    def test_none_filters_ignored(self, db, seeded):
        client, _ = seeded
        client.vectors[self.QUERY] = self.QUERY_VECTOR

        results = advanced_search(
            self.QUERY, db, client, filters={"category": None, "device": None}
        )

        assert len(results) == 3

    def test_matches_beyond_overfetch_window_are_dropped(self, db, seeded):
        client, ids = seeded
        # cphaprob state ranks first, cpstat os last
        client.vectors[self.QUERY] = [0.9, 0.6, 0.4, 0, 0, 0, 0, 0]

        results = advanced_search(
            self.QUERY, db, client, filters={"device": "management"}, limit=1, threshold=0.1
        )

        # Window is limit * 2 = 2 ranked results, neither on a management device
        assert results == []
