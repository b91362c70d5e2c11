"""Exceptions raised by the sync process."""
from __future__ import annotations


class BankSyncError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(BankSyncError):
    pass


class UnknownComponentError(ConfigError):
    """A configured source or sink name has no registered constructor."""


class StoreError(BankSyncError):
    """Reading or writing a persisted requisition failed."""


class CorruptRequisitionError(StoreError):
    """A requisition file exists but cannot be parsed."""


class AuthorizationError(BankSyncError):
    pass


class RequisitionNotAuthorizedError(AuthorizationError):
    """The requisition was not linked by the user in time."""

    def __init__(self, requisition) -> None:
        super().__init__(
            f"requisition {requisition.id or '<new>'} for {requisition.institution_id} "
            f"is not authorized (status {requisition.status or 'unknown'}); "
            f"visit {requisition.link or 'the requisition link'} to grant access"
        )
        self.requisition = requisition


class SyncError(BankSyncError):
    """A run failed while reading from a source or writing to a sink."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
