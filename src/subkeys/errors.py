"""Exception hierarchy for backup, restore and comparison runs."""

from __future__ import annotations


class SubkeysError(Exception):
    """Base class for every error the CLI reports and exits non-zero on."""


class AuthenticationError(SubkeysError):
    """Azure CLI credentials or the active subscription could not be resolved."""


class RemoteOperationError(SubkeysError):
    """An APIM management call (list, secrets, create, delete) failed."""

    def __init__(self, message: str, *, entity: str | None = None):
        super().__init__(message)
        self.entity = entity


class IncompleteRecordError(RemoteOperationError):
    """A subscription came back without both of its keys."""


class SnapshotError(SubkeysError):
    """A snapshot file could not be read, parsed or written."""


class CommandFailed(SubkeysError):
    """A command ran to completion but some records failed."""

    def __init__(self, message: str, failures: int, summary: object | None = None):
        super().__init__(message)
        self.failures = failures
        self.summary = summary
