"""Exceptions raised to callers of the sync pipeline."""


class SyncError(Exception):
    """Base class for sync failures surfaced to callers."""


class MissingCredentialError(SyncError):
    """A credential required by the whole pipeline is not configured."""


class SourceNotFoundError(SyncError):
    """No source with the requested id exists."""


class SourceValidationError(SyncError):
    """Source input failed validation."""


class RegistryUnavailableError(SyncError):
    """The source registry (remote store) is not configured."""
