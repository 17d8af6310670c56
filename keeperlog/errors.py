"""Typed errors raised by the keeperlog core."""

from __future__ import annotations


class KeeperLogError(Exception):
    """Base class for every error the core raises on purpose."""


class NotFoundError(KeeperLogError):
    """A row or table key does not exist."""

    def __init__(self, table: str, row_id: object) -> None:
        super().__init__(f"{table} row not found: {row_id}")
        self.table = table
        self.row_id = row_id


class InvalidFormatError(KeeperLogError):
    """A backup bundle, CSV file or profile document is malformed."""


class ParseFailure(KeeperLogError):
    """A single CSV row holds a value that cannot be parsed."""


class TransactionFailure(KeeperLogError):
    """A multi-table write failed and was rolled back."""


class StorageUnavailableError(KeeperLogError):
    """The database or profile file cannot be opened or written."""


class ConstraintViolation(KeeperLogError):
    """A row breaks a uniqueness or value constraint of its table."""


class ActiveSessionError(KeeperLogError):
    """A second session would become active while another one is."""


class InvalidTransitionError(KeeperLogError):
    """A session status change that the state machine does not allow."""
