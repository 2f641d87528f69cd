"""
Tests for the lexical candidate filter and the FTS index it reads.

Tests:
    1. Any matching token selects a command (name, description, keywords, category)
    2. No tokens or no matches fall back to every non-deprecated command
    3. The cap bounds the number of FTS matches
    4. An index query failure degrades to the fallback instead of raising
    5. The index follows inserts, updates, deletes and category renames
"""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from cmdsearch.db import dal
from cmdsearch.search.candidates import build_match_expression, filter_candidates


def _seed(db):
    ids = {}
    for name, category, description, keywords, deprecated in [
        ("cphaprob state", "clusterxl", "Cluster member state", "ha,failover", False),
        ("fw ctl pstat", "firewall", "Kernel memory statistics", "memory,kernel", False),
        ("cpstat os", "system", "Operating system status", None, False),
        ("cphaprob list", "clusterxl", "Legacy cluster listing", None, True),
    ]:
        ids[name] = dal.insert_command(
            {
                "name": name,
                "category": category,
                "description": description,
                "keywords": keywords,
                "deprecated": deprecated,
            },
            db=db,
        )["id"]
    db.commit()
    return ids


class TestBuildMatchExpression:
    def test_tokens_quoted_and_joined(self):
        assert build_match_expression(["cluster", "fw-ctl"]) == '"cluster" OR "fw-ctl"'

    def test_embedded_quotes_escaped(self):
        assert build_match_expression(['say"hi']) == '"say""hi"'


class TestFilterCandidates:
    def test_matches_description(self, db):
        ids = _seed(db)
        assert set(filter_candidates(["memory"], db)) == {ids["fw ctl pstat"]}

    def test_matches_keywords_and_category(self, db):
        ids = _seed(db)
        assert set(filter_candidates(["failover"], db)) == {ids["cphaprob state"]}
        assert set(filter_candidates(["system"], db)) == {ids["cpstat os"]}

    def test_disjunctive_match(self, db):
        ids = _seed(db)
        result = set(filter_candidates(["kernel", "operating"], db))
        assert result == {ids["fw ctl pstat"], ids["cpstat os"]}

    def test_hyphenated_token_matches_as_phrase(self, db):
        ids = _seed(db)
        # Unquoted, "-" would be parsed as an FTS5 operator
        assert filter_candidates(["fw-ctl"], db) == [ids["fw ctl pstat"]]

    def test_no_tokens_falls_back_to_active(self, db):
        ids = _seed(db)
        result = filter_candidates([], db)
        assert result == sorted(v for k, v in ids.items() if k != "cphaprob list")

    def test_no_matches_falls_back_to_active(self, db):
        ids = _seed(db)
        result = filter_candidates(["xyzzy"], db)
        assert ids["cphaprob list"] not in result
        assert len(result) == 3

    def test_cap_bounds_matches(self, db):
        for i in range(5):
            dal.insert_command({"name": f"vpn tu {i}", "category": "vpn"}, db=db)
        db.commit()

        assert len(filter_candidates(["vpn"], db, cap=2)) == 2

    def test_index_error_degrades_to_fallback(self, db):
        ids = _seed(db)
        error = OperationalError("SELECT rowid FROM commands_fts", {}, Exception("fts5: syntax error"))

        with patch("cmdsearch.search.candidates._match_ids", side_effect=error):
            result = filter_candidates(["cluster"], db)

        assert len(result) == 3
        assert ids["cphaprob list"] not in result

    def test_empty_catalog(self, db):
        assert filter_candidates(["cluster"], db) == []


class TestIndexFollowsRecords:
    def test_update_reindexes(self, db):
        ids = _seed(db)
        record_id = ids["cpstat os"]

        dal.update_command(record_id, {"description": "Appliance throughput counters"}, db=db)
        db.commit()

        assert filter_candidates(["throughput"], db) == [record_id]
        assert filter_candidates(["operating", "kernel"], db) == [ids["fw ctl pstat"]]

    def test_delete_removes_from_index(self, db):
        ids = _seed(db)

        dal.delete_command(ids["fw ctl pstat"], db=db)
        db.commit()

        # No match left, so the fallback returns the remaining active ids
        result = filter_candidates(["memory"], db)
        assert ids["fw ctl pstat"] not in result
        assert len(result) == 2

    def test_category_rename_reindexes(self, db):
        ids = _seed(db)

        dal.rename_category("system", "platform", db=db)
        db.commit()

        assert filter_candidates(["platform"], db) == [ids["cpstat os"]]
