"""Typed storage errors raised by the write pipeline and pricing engine.

Callers branch on ``StorageError.error_type`` rather than on driver
exceptions. Every constructor keeps the original exception (if any) on
``original_error`` and chains it as ``__cause__``.
"""

from enum import StrEnum


class StorageErrorType(StrEnum):
    CONNECTION_FAILED = "CONNECTION_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INSERT_FAILED = "INSERT_FAILED"
    QUERY_FAILED = "QUERY_FAILED"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    DATA_NOT_FOUND = "DATA_NOT_FOUND"
    INVALID_DATA = "INVALID_DATA"
    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    UNKNOWN_EVENT_TYPE = "UNKNOWN_EVENT_TYPE"
    MISSING_API_KEY_ID = "MISSING_API_KEY_ID"
    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    USER_INSERT_FAILED = "USER_INSERT_FAILED"
    EVENT_INSERT_FAILED = "EVENT_INSERT_FAILED"
    PRICE_CALCULATION_FAILED = "PRICE_CALCULATION_FAILED"
    EMPTY_RESULT = "EMPTY_RESULT"
    UNKNOWN = "UNKNOWN"


# HTTP status hints for the API layer; anything not listed is a 500.
_STATUS_CODES: dict[StorageErrorType, int] = {
    StorageErrorType.INVALID_DATA: 400,
    StorageErrorType.INVALID_TIMESTAMP: 400,
    StorageErrorType.UNKNOWN_EVENT_TYPE: 400,
    StorageErrorType.MISSING_API_KEY_ID: 400,
    StorageErrorType.CONSTRAINT_VIOLATION: 409,
    StorageErrorType.DATA_NOT_FOUND: 404,
    StorageErrorType.EMPTY_RESULT: 404,
}


class StorageError(Exception):
    """A classified failure from the storage core."""

    def __init__(
        self,
        error_type: StorageErrorType,
        message: str,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.original_error = original_error
        if original_error is not None:
            self.__cause__ = original_error

    def __repr__(self) -> str:
        return f"StorageError({self.error_type.value}, {self.message!r})"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self.error_type, 500)

    # ── Constructors ─────────────────────────────────────────

    @classmethod
    def connection_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = f"Storage connection failed: {details}" if details else "Storage connection failed"
        return cls(StorageErrorType.CONNECTION_FAILED, msg, original_error)

    @classmethod
    def transaction_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = f"Storage transaction failed: {details}" if details else "Storage transaction failed"
        return cls(StorageErrorType.TRANSACTION_FAILED, msg, original_error)

    @classmethod
    def insert_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = (
            f"Failed to insert data into storage: {details}"
            if details
            else "Failed to insert data into storage"
        )
        return cls(StorageErrorType.INSERT_FAILED, msg, original_error)

    @classmethod
    def query_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = f"Storage query failed: {details}" if details else "Storage query failed"
        return cls(StorageErrorType.QUERY_FAILED, msg, original_error)

    @classmethod
    def constraint_violation(cls, constraint: str | None = None, original_error=None) -> "StorageError":
        msg = (
            f"Database constraint violation: {constraint}"
            if constraint
            else "Database constraint violation"
        )
        return cls(StorageErrorType.CONSTRAINT_VIOLATION, msg, original_error)

    @classmethod
    def data_not_found(cls, entity: str | None = None, original_error=None) -> "StorageError":
        msg = f"{entity} not found in storage" if entity else "Data not found in storage"
        return cls(StorageErrorType.DATA_NOT_FOUND, msg, original_error)

    @classmethod
    def invalid_data(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = (
            f"Invalid data for storage operation: {details}"
            if details
            else "Invalid data for storage operation"
        )
        return cls(StorageErrorType.INVALID_DATA, msg, original_error)

    @classmethod
    def serialization_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = (
            f"Failed to serialize data for storage: {details}"
            if details
            else "Failed to serialize data for storage"
        )
        return cls(StorageErrorType.SERIALIZATION_FAILED, msg, original_error)

    @classmethod
    def unknown_event_type(cls, event_type: object, original_error=None) -> "StorageError":
        err = cls(
            StorageErrorType.UNKNOWN_EVENT_TYPE,
            f"No storage logic implemented for event type: {event_type}",
            original_error,
        )
        err.event_type = event_type
        return err

    @classmethod
    def missing_api_key_id(cls, original_error=None) -> "StorageError":
        return cls(
            StorageErrorType.MISSING_API_KEY_ID,
            "API key ID is required for event storage",
            original_error,
        )

    @classmethod
    def invalid_timestamp(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = f"Invalid timestamp: {details}" if details else "Invalid or missing timestamp"
        return cls(StorageErrorType.INVALID_TIMESTAMP, msg, original_error)

    @classmethod
    def user_insert_failed(cls, user_id: object = None, original_error=None) -> "StorageError":
        msg = f"Failed to insert user with ID: {user_id}" if user_id else "Failed to insert user"
        return cls(StorageErrorType.USER_INSERT_FAILED, msg, original_error)

    @classmethod
    def event_insert_failed(cls, details: str | None = None, original_error=None) -> "StorageError":
        msg = f"Failed to insert event: {details}" if details else "Failed to insert event"
        return cls(StorageErrorType.EVENT_INSERT_FAILED, msg, original_error)

    @classmethod
    def price_calculation_failed(cls, user_id: object = None, original_error=None) -> "StorageError":
        msg = (
            f"Failed to calculate price for user: {user_id}"
            if user_id
            else "Failed to calculate price"
        )
        return cls(StorageErrorType.PRICE_CALCULATION_FAILED, msg, original_error)

    @classmethod
    def empty_result(cls, entity: str | None = None, original_error=None) -> "StorageError":
        msg = f"Query returned empty result for: {entity}" if entity else "Query returned empty result"
        return cls(StorageErrorType.EMPTY_RESULT, msg, original_error)

    @classmethod
    def unknown(cls, original_error=None) -> "StorageError":
        return cls(StorageErrorType.UNKNOWN, "An unknown storage error occurred", original_error)
