"""Tests for join candidate generation."""

import pytest

from crossmodel.core.catalog import generate_table_hash
from crossmodel.core.joins import (
    JoinCandidateGenerator,
    levenshtein,
    normalize_column_name,
    similarity,
)
from crossmodel.core.joins.candidates import singular
from crossmodel.core.models import JoinCatalogEntry, JoinType, SuggestionSource


def _pairs(suggestions):
    return [(s.left_column_name, s.right_column_name) for s in suggestions]


def _entry(**overrides) -> JoinCatalogEntry:
    values = {
        "id": 1,
        "left_data_source_id": 1,
        "left_table_name": "customers",
        "left_column_name": "id",
        "right_data_source_id": 2,
        "right_table_name": "orders",
        "right_column_name": "customer_id",
        "join_type": "INNER",
        "usage_count": 3,
        "left_schema_hash": None,
        "right_schema_hash": None,
    }
    values.update(overrides)
    return JoinCatalogEntry(**values)


class TestStringHelpers:
    """Test cases for name comparison helpers."""

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ("", "", 0),
            ("abc", "", 3),
            ("", "ab", 2),
            ("kitten", "sitting", 3),
            ("customer", "customer", 0),
            ("flaw", "lawn", 2),
        ],
    )
    def test_levenshtein(self, a, b, expected):
        assert levenshtein(a, b) == expected

    def test_similarity(self):
        assert similarity("", "") == 1.0
        assert similarity("abc", "abc") == 1.0
        assert similarity("abcd", "abcx") == 0.75

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Customer_ID", "customer"),
            ("product_key", "product"),
            ("country_code", "country"),
            ("first_name", "firstname"),
            ("id", "id"),
            ("_id", "id"),
        ],
    )
    def test_normalize_column_name(self, name, expected):
        assert normalize_column_name(name) == expected

    @pytest.mark.parametrize(
        "table,expected",
        [
            ("customers", "customer"),
            ("Categories", "category"),
            ("address", "address"),
            ("staff", "staff"),
        ],
    )
    def test_singular(self, table, expected):
        assert singular(table) == expected


class TestForeignKeyTier:
    """Test cases for declared foreign key suggestions."""

    def test_foreign_key_ranks_first(self, shop_tables):
        customers, orders = shop_tables(1, 1)

        suggestions = JoinCandidateGenerator().get_combined_suggestions(customers, orders)

        assert suggestions[0].source == SuggestionSource.FOREIGN_KEY
        assert suggestions[0].confidence == 100
        assert _pairs(suggestions) == [("id", "customer_id"), ("id", "id")]

    def test_foreign_key_from_left_side(self, shop_tables):
        customers, orders = shop_tables(1, 1)

        suggestions = JoinCandidateGenerator().get_combined_suggestions(orders, customers)

        assert suggestions[0].source == SuggestionSource.FOREIGN_KEY
        assert _pairs(suggestions)[0] == ("customer_id", "id")

    def test_no_foreign_keys_across_sources(self, shop_tables):
        customers, orders = shop_tables(1, 2)

        suggestions = JoinCandidateGenerator().get_combined_suggestions(customers, orders)

        assert all(s.source == SuggestionSource.HEURISTIC for s in suggestions)
        assert all(s.is_cross_source for s in suggestions)


class TestHeuristicTier:
    """Test cases for name and type heuristics."""

    def test_matching_names_and_key_convention(self, shop_tables):
        customers, orders = shop_tables(1, 2)

        suggestions = JoinCandidateGenerator().get_combined_suggestions(customers, orders)

        assert _pairs(suggestions) == [("id", "id"), ("id", "customer_id")]
        assert [s.confidence for s in suggestions] == [95, 90]
        assert suggestions[1].reason == "Table key naming convention"

    def test_normalized_names_match(self, make_table):
        left = make_table(1, "a", [("Customer_Key", "integer")])
        right = make_table(2, "b", [("customer_id", "bigint")])

        suggestions = JoinCandidateGenerator().get_combined_suggestions(left, right)

        assert len(suggestions) == 1
        assert suggestions[0].confidence == 95

    def test_incompatible_types_skipped(self, make_table):
        left = make_table(1, "a", [("code", "integer")])
        right = make_table(2, "b", [("code", "text")])

        assert JoinCandidateGenerator().get_combined_suggestions(left, right) == []

    def test_json_columns_never_suggested(self, make_table):
        left = make_table(1, "a", [("payload", "jsonb")])
        right = make_table(2, "b", [("payload", "jsonb")])

        assert JoinCandidateGenerator().get_combined_suggestions(left, right) == []

    def test_similarity_score(self, make_table):
        left = make_table(1, "a", [("region", "text")])
        right = make_table(2, "b", [("regions", "text")])

        suggestions = JoinCandidateGenerator().get_combined_suggestions(left, right)

        # 1 - 1/7 rounds to 86
        assert suggestions[0].confidence == 86
        assert suggestions[0].source == SuggestionSource.HEURISTIC

    def test_empty_table_yields_nothing(self, make_table):
        left = make_table(1, "a", [])
        right = make_table(2, "b", [("id", "integer")])

        assert JoinCandidateGenerator().get_combined_suggestions(left, right) == []


class TestFilteringAndLimits:
    """Test cases for the confidence floor and result cap."""

    def test_min_confidence_floor(self, shop_tables):
        customers, orders = shop_tables(1, 1)
        generator = JoinCandidateGenerator(min_confidence=96)

        suggestions = generator.get_combined_suggestions(customers, orders)

        assert _pairs(suggestions) == [("id", "customer_id")]

    def test_low_scores_dropped_by_default(self, make_table):
        left = make_table(1, "a", [("name", "text")])
        right = make_table(2, "b", [("status", "text")])

        assert JoinCandidateGenerator().get_combined_suggestions(left, right) == []
        assert JoinCandidateGenerator(min_confidence=0).get_combined_suggestions(left, right)

    def test_max_suggestions_cap(self, shop_tables):
        customers, orders = shop_tables(1, 1)
        generator = JoinCandidateGenerator(max_suggestions=1)

        assert len(generator.get_combined_suggestions(customers, orders)) == 1


class TestCatalogTier:
    """Test cases for suggestions backed by the join catalog."""

    def test_catalog_ranks_above_heuristics(self, shop_tables):
        customers, orders = shop_tables(1, 2)
        generator = JoinCandidateGenerator(catalog_lookup=lambda left, right: [_entry()])

        suggestions = generator.get_combined_suggestions(customers, orders)

        assert suggestions[0].source == SuggestionSource.CATALOG
        assert suggestions[0].confidence == 100
        assert suggestions[0].usage_count == 3
        assert _pairs(suggestions) == [("id", "customer_id"), ("id", "id")]

    def test_reversed_entry_is_mirrored(self, shop_tables):
        customers, orders = shop_tables(1, 2)
        generator = JoinCandidateGenerator(
            catalog_lookup=lambda left, right: [_entry(join_type="LEFT")]
        )

        suggestions = generator.get_combined_suggestions(orders, customers)

        assert _pairs(suggestions)[0] == ("customer_id", "id")
        assert suggestions[0].suggested_join_type == JoinType.RIGHT

    def test_matching_hash_is_valid(self, shop_tables):
        customers, orders = shop_tables(1, 2)
        entry = _entry(
            left_schema_hash=generate_table_hash(customers),
            right_schema_hash=generate_table_hash(orders),
        )
        generator = JoinCandidateGenerator(catalog_lookup=lambda left, right: [entry])

        suggestions = generator.get_combined_suggestions(customers, orders)

        assert suggestions[0].source == SuggestionSource.CATALOG

    def test_stale_hash_excludes_entry(self, shop_tables):
        customers, orders = shop_tables(1, 2)
        entry = _entry(right_schema_hash="0" * 64)
        generator = JoinCandidateGenerator(catalog_lookup=lambda left, right: [entry])

        suggestions = generator.get_combined_suggestions(customers, orders)

        assert all(s.source != SuggestionSource.CATALOG for s in suggestions)

    def test_entry_for_dropped_column_skipped(self, shop_tables):
        customers, orders = shop_tables(1, 2)
        entry = _entry(right_column_name="buyer_id")
        generator = JoinCandidateGenerator(catalog_lookup=lambda left, right: [entry])

        suggestions = generator.get_combined_suggestions(customers, orders)

        assert all(s.source != SuggestionSource.CATALOG for s in suggestions)
