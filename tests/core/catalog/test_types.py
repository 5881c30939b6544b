"""Tests for native type normalization."""

import pytest

from crossmodel.core.catalog import are_compatible, normalize_type
from crossmodel.core.models import TypeTag


class TestNormalizeType:
    """Test cases for normalize_type."""

    @pytest.mark.parametrize(
        "native_type,expected",
        [
            ("INTEGER", TypeTag.INTEGER),
            ("bigint", TypeTag.INTEGER),
            ("int4", TypeTag.INTEGER),
            ("unsigned big int", TypeTag.INTEGER),
            ("numeric(10,2)", TypeTag.NUMERIC),
            ("double precision", TypeTag.NUMERIC),
            ("FLOAT", TypeTag.NUMERIC),
            ("varchar(255)", TypeTag.STRING),
            ("character varying", TypeTag.STRING),
            ("uuid", TypeTag.STRING),
            ("objectId", TypeTag.STRING),
            ("timestamp with time zone", TypeTag.DATE),
            ("DATE", TypeTag.DATE),
            ("boolean", TypeTag.BOOLEAN),
            ("jsonb", TypeTag.JSON),
            ("int4[]", TypeTag.JSON),
            ("interval", TypeTag.UNKNOWN),
            ("geometry", TypeTag.UNKNOWN),
        ],
    )
    def test_known_types(self, native_type: str, expected: TypeTag):
        assert normalize_type(native_type) == expected

    def test_sqlite_affinity(self):
        """Declared types follow SQLite's affinity rules."""
        assert normalize_type("UNSIGNED MEDIUMINTEGER") == TypeTag.INTEGER
        assert normalize_type("NATIVE CHARACTER(70)") == TypeTag.STRING
        assert normalize_type("DOUBLEISH") == TypeTag.NUMERIC

    def test_empty_is_unknown(self):
        assert normalize_type(None) == TypeTag.UNKNOWN
        assert normalize_type("") == TypeTag.UNKNOWN


class TestAreCompatible:
    """Test cases for join-key type compatibility."""

    def test_numbers_mix(self):
        assert are_compatible(TypeTag.INTEGER, TypeTag.NUMERIC)

    def test_same_tag(self):
        assert are_compatible(TypeTag.STRING, TypeTag.STRING)
        assert are_compatible(TypeTag.DATE, TypeTag.DATE)

    def test_different_tags(self):
        assert not are_compatible(TypeTag.STRING, TypeTag.INTEGER)
        assert not are_compatible(TypeTag.BOOLEAN, TypeTag.DATE)

    def test_unknown_matches_scalars(self):
        assert are_compatible(TypeTag.UNKNOWN, TypeTag.STRING)
        assert are_compatible(TypeTag.INTEGER, TypeTag.UNKNOWN)

    def test_json_never_compatible(self):
        assert not are_compatible(TypeTag.JSON, TypeTag.JSON)
        assert not are_compatible(TypeTag.JSON, TypeTag.UNKNOWN)
