import pytest

from db_api_tool.errors import InvalidIdentifier
from db_api_tool.guardrails import (
    MAX_IDENTIFIER_LENGTH,
    Identifier,
    clamp_limit,
    parse_columns,
    sanitize_identifier,
)


def test_sanitize_identifier() -> None:
    assert sanitize_identifier("valid_name", "table") == Identifier("valid_name")
    assert sanitize_identifier("_private9").raw == "_private9"
    with pytest.raises(InvalidIdentifier):
        sanitize_identifier("not-valid*", "table")


@pytest.mark.parametrize(
    "name",
    [
        "",
        "9starts_with_digit",
        "has space",
        "semi;colon",
        "back`tick",
        "orders' OR '1'='1",
        "naïve",
        "orders\n",
        "a" * (MAX_IDENTIFIER_LENGTH + 1),
    ],
)
def test_sanitize_identifier_rejects(name: str) -> None:
    with pytest.raises(InvalidIdentifier):
        sanitize_identifier(name, "table")


def test_sanitize_identifier_accepts_max_length() -> None:
    name = "a" * MAX_IDENTIFIER_LENGTH
    assert sanitize_identifier(name).raw == name


def test_sanitize_identifier_is_idempotent() -> None:
    first = sanitize_identifier("Order_Items")
    assert sanitize_identifier(first.raw) == first


def test_identifier_quoting() -> None:
    assert sanitize_identifier("select").quoted == "`select`"
    assert str(sanitize_identifier("orders")) == "orders"


def test_parse_columns() -> None:
    assert parse_columns("id, total") == (Identifier("id"), Identifier("total"))
    assert parse_columns("id,,id, ") == (Identifier("id"),)
    assert parse_columns(None) == ()
    assert parse_columns(" , ") == ()
    assert parse_columns("*") == ()


def test_parse_columns_rejects_whole_list() -> None:
    with pytest.raises(InvalidIdentifier):
        parse_columns("id,total;DROP TABLE orders")


def test_clamp_limit() -> None:
    assert clamp_limit(5, 10, 100) == 5
    assert clamp_limit(10000, 10, 100) == 100
    assert clamp_limit(None, 10, 100) == 10
    assert clamp_limit(0, 10, 100) == 10
    assert clamp_limit(-5, 10, 100) == 10


def test_clamp_limit_parses_strings() -> None:
    assert clamp_limit("7", 10, 100) == 7
    assert clamp_limit("abc", 10, 100) == 10
    assert clamp_limit("", 10, 100) == 10
    assert clamp_limit("-3", 10, 100) == 10
    assert clamp_limit("500", 10, 100) == 100


def test_clamp_limit_default_never_exceeds_max() -> None:
    assert clamp_limit(None, 50, 20) == 20
