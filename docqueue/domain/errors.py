"""
Exception hierarchy for docqueue.

DocQueueError
├── StoreFault        — connectivity, auth or validation failure at the store
└── CASConflictError  — conditional write rejected because the etag changed

Absence is not an error: an empty claim or an acknowledge of an
already-removed item are ordinary results, never exceptions.
"""

from __future__ import annotations


class DocQueueError(Exception):
    """Base class for all docqueue exceptions."""


class StoreFault(DocQueueError):
    """
    Wraps an underlying failure from a document store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the store backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class CASConflictError(DocQueueError):
    """
    Raised when a compare-and-set write is rejected by a blob backend.

    Adapters that emulate find-and-modify with optimistic writes re-read and
    retry on this signal; it only escapes once their retry budget is spent.
    """
