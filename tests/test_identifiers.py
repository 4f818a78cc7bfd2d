"""Unit tests for the pluggable user id scheme."""

import uuid

import pytest
from sqlalchemy import BigInteger, Integer, Uuid

from meterstore.core.identifiers import parse_user_id, safe_parse_user_id, user_id_column_type


def test_uuid_accepts_string_and_uuid():
    value = uuid.uuid4()
    assert parse_user_id(str(value), "uuid") == value
    assert parse_user_id(value, "uuid") is value
    assert parse_user_id(f"  {value}  ", "uuid") == value


def test_uuid_rejects_garbage():
    with pytest.raises(ValueError):
        parse_user_id("not-a-uuid", "uuid")
    with pytest.raises(ValueError):
        parse_user_id(42, "uuid")


def test_bigint_accepts_int_and_decimal_string():
    assert parse_user_id(42, "bigint") == 42
    assert parse_user_id("9007199254740993", "bigint") == 9007199254740993


def test_bigint_rejects_out_of_range():
    with pytest.raises(ValueError):
        parse_user_id(2**63, "bigint")


def test_int_bounds_are_32_bit():
    assert parse_user_id(2**31 - 1, "int") == 2**31 - 1
    with pytest.raises(ValueError):
        parse_user_id(2**31, "int")


def test_integer_schemes_reject_bool_and_float():
    with pytest.raises(ValueError):
        parse_user_id(True, "bigint")
    with pytest.raises(ValueError):
        parse_user_id(1.5, "int")
    with pytest.raises(ValueError):
        parse_user_id("12abc", "int")


def test_safe_parse_returns_none_on_invalid():
    assert safe_parse_user_id("nope", "uuid") is None
    assert safe_parse_user_id("7", "int") == 7


def test_default_scheme_is_uuid():
    value = uuid.uuid4()
    assert parse_user_id(str(value)) == value


def test_column_type_per_scheme():
    assert isinstance(user_id_column_type("uuid"), Uuid)
    assert isinstance(user_id_column_type("bigint"), BigInteger)
    assert isinstance(user_id_column_type("int"), Integer)
