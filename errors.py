"""Failures raised while reconciling a contact."""


class ReconciliationError(Exception):
    pass


class IntegrityError(ReconciliationError):
    """Stored links are inconsistent: dangling linkedId, no resolvable primary, corrupt row.

    Indicates corrupted state, never retried.
    """


class StorageUnavailable(ReconciliationError):
    """The contact store could not be reached or stayed locked. Safe to retry."""


class EmptyRequestError(ReconciliationError):
    """Neither email nor phoneNumber supplied while empty requests are disabled."""
