"""Exception hierarchy for the import pipeline.

Structural problems (bad manifest, nothing to import, missing space metadata)
abort before anything is written. Transaction failures wrap the underlying
database error so callers see one failure type regardless of the store.
"""

from typing import Optional


class ConfluenceImportError(Exception):
    """Base exception for import-related errors."""
    pass


class MalformedArchiveError(ConfluenceImportError):
    """The archive has no readable manifest or a record has the wrong shape."""
    pass


class NoPagesFoundError(ConfluenceImportError):
    """No current page survived parsing."""
    pass


class NoSpaceInfoFoundError(ConfluenceImportError):
    """Space-import mode was requested but the manifest has no Space object."""
    pass


class HierarchyAnomalyError(ConfluenceImportError):
    """A page could not be placed in the tree and the policy is to fail."""
    pass


class ImportCancelledError(ConfluenceImportError):
    """Cancellation was requested before the commit transaction opened."""
    pass


class TransactionFailureError(ConfluenceImportError):
    """The commit transaction failed and was rolled back."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


__all__ = [
    'ConfluenceImportError',
    'MalformedArchiveError',
    'NoPagesFoundError',
    'NoSpaceInfoFoundError',
    'HierarchyAnomalyError',
    'ImportCancelledError',
    'TransactionFailureError'
]
