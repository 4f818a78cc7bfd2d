"""Pluggable user identifier scheme.

The scheme (``uuid``, ``bigint`` or ``int``) is read once from settings.
Everything downstream handles an opaque, already-validated ``UserId`` and
never branches on the scheme itself.
"""

import uuid
from typing import Literal

from sqlalchemy import BigInteger, Integer, Uuid
from sqlalchemy.types import TypeEngine

from meterstore.core.config import get_settings

UserIdType = Literal["uuid", "bigint", "int"]
UserId = uuid.UUID | int

_INT_BOUNDS: dict[str, tuple[int, int]] = {
    "bigint": (-(2**63), 2**63 - 1),
    "int": (-(2**31), 2**31 - 1),
}


def configured_id_type() -> UserIdType:
    return get_settings().user_id_type


def _parse_uuid(value: object) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid UUID: expected a string, got {type(value).__name__}")
    try:
        return uuid.UUID(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value!r}") from exc


def _parse_integer(value: object, id_type: str) -> int:
    if isinstance(value, bool):
        raise ValueError("Invalid integer id: booleans are not identifiers")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid integer id: {value!r}") from exc
    if not isinstance(value, int):
        raise ValueError(f"Invalid integer id: expected int, got {type(value).__name__}")
    low, high = _INT_BOUNDS[id_type]
    if not low <= value <= high:
        raise ValueError(f"Integer id {value} is out of range for {id_type}")
    return value


def parse_user_id(value: object, id_type: UserIdType | None = None) -> UserId:
    """Validate external input as a user id. Raises ``ValueError``."""
    id_type = id_type or configured_id_type()
    if id_type == "uuid":
        return _parse_uuid(value)
    if id_type in _INT_BOUNDS:
        return _parse_integer(value, id_type)
    raise ValueError(f"Unsupported user id type: {id_type}")


def safe_parse_user_id(value: object, id_type: UserIdType | None = None) -> UserId | None:
    """Like :func:`parse_user_id` but returns ``None`` on invalid input."""
    try:
        return parse_user_id(value, id_type)
    except ValueError:
        return None


def user_id_column_type(id_type: UserIdType | None = None) -> TypeEngine:
    """SQLAlchemy column type backing ``users.id`` for the scheme."""
    id_type = id_type or configured_id_type()
    if id_type == "uuid":
        return Uuid()
    if id_type == "bigint":
        return BigInteger()
    if id_type == "int":
        return Integer()
    raise ValueError(f"Unsupported user id type: {id_type}")
