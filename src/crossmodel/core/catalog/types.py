"""Normalization of native column types into type tags."""

import re

from crossmodel.core.models.metadata import TypeTag

_EXACT: dict[str, TypeTag] = {
    # integer
    "int": TypeTag.INTEGER,
    "integer": TypeTag.INTEGER,
    "int2": TypeTag.INTEGER,
    "int4": TypeTag.INTEGER,
    "int8": TypeTag.INTEGER,
    "smallint": TypeTag.INTEGER,
    "bigint": TypeTag.INTEGER,
    "tinyint": TypeTag.INTEGER,
    "mediumint": TypeTag.INTEGER,
    "serial": TypeTag.INTEGER,
    "smallserial": TypeTag.INTEGER,
    "bigserial": TypeTag.INTEGER,
    "long": TypeTag.INTEGER,
    # numeric
    "numeric": TypeTag.NUMERIC,
    "decimal": TypeTag.NUMERIC,
    "real": TypeTag.NUMERIC,
    "float": TypeTag.NUMERIC,
    "float4": TypeTag.NUMERIC,
    "float8": TypeTag.NUMERIC,
    "double": TypeTag.NUMERIC,
    "double precision": TypeTag.NUMERIC,
    "money": TypeTag.NUMERIC,
    "number": TypeTag.NUMERIC,
    # string
    "text": TypeTag.STRING,
    "varchar": TypeTag.STRING,
    "character varying": TypeTag.STRING,
    "char": TypeTag.STRING,
    "character": TypeTag.STRING,
    "nchar": TypeTag.STRING,
    "nvarchar": TypeTag.STRING,
    "bpchar": TypeTag.STRING,
    "citext": TypeTag.STRING,
    "name": TypeTag.STRING,
    "string": TypeTag.STRING,
    "uuid": TypeTag.STRING,
    "clob": TypeTag.STRING,
    "objectid": TypeTag.STRING,
    # date
    "date": TypeTag.DATE,
    "datetime": TypeTag.DATE,
    "timestamp": TypeTag.DATE,
    "timestamptz": TypeTag.DATE,
    "time": TypeTag.DATE,
    "timetz": TypeTag.DATE,
    # boolean
    "bool": TypeTag.BOOLEAN,
    "boolean": TypeTag.BOOLEAN,
    # json
    "json": TypeTag.JSON,
    "jsonb": TypeTag.JSON,
    "object": TypeTag.JSON,
    "array": TypeTag.JSON,
    # would otherwise match the "int" affinity rule
    "interval": TypeTag.UNKNOWN,
    "point": TypeTag.UNKNOWN,
}

_PARAMETERS = re.compile(r"\(.*?\)")


def normalize_type(native_type: str | None) -> TypeTag:
    """Map a native column type name to its type tag.

    Handles length/precision parameters (``varchar(255)``), time zone
    qualifiers (``timestamp with time zone``), arrays (``int4[]``) and
    SQLite type affinity rules. Anything unrecognized is ``unknown``.

    Args:
        native_type: Type name as reported by the source.

    Returns:
        The normalized TypeTag.
    """
    if not native_type:
        return TypeTag.UNKNOWN

    name = _PARAMETERS.sub("", native_type).strip().lower()
    if name.endswith("[]"):
        return TypeTag.JSON
    if name.startswith("timestamp") or name.startswith("time "):
        return TypeTag.DATE
    if name.startswith("unsigned "):
        name = name[len("unsigned ") :]

    if name in _EXACT:
        return _EXACT[name]

    # SQLite affinity rules
    if "int" in name:
        return TypeTag.INTEGER
    if "char" in name or "clob" in name or "text" in name:
        return TypeTag.STRING
    if "real" in name or "floa" in name or "doub" in name:
        return TypeTag.NUMERIC
    return TypeTag.UNKNOWN


def are_compatible(left: TypeTag, right: TypeTag) -> bool:
    """Whether two columns could plausibly hold the same join-key values.

    Integers and numerics are interchangeable; ``unknown`` is compatible with
    any scalar type; ``json`` never is.
    """
    if TypeTag.JSON in (left, right):
        return False
    if TypeTag.UNKNOWN in (left, right):
        return True
    if left.is_number and right.is_number:
        return True
    return left == right
