"""Domain exceptions for the back-office aggregation layer."""

from typing import Any


class BackofficeError(Exception):
    """Base exception for the back-office services."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for structured logs."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(BackofficeError):
    """Configuration error."""


class RecordStoreError(BackofficeError):
    """The record store could not serve a read or write."""


class RecordNotFoundError(RecordStoreError):
    """A record addressed by id does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(
            f"Record {record_id} not found in {collection}",
            context={"collection": collection, "record_id": record_id},
        )


class UnsupportedQueryError(RecordStoreError):
    """The store cannot evaluate the requested comparison."""

    def __init__(self, op: str) -> None:
        super().__init__(f"Unsupported query operator: {op}", context={"op": op})
