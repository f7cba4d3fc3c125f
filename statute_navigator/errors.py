"""
Error taxonomy shared by ingestion and serving.

Transient failures are retried (ingestion) or degraded (session tier);
configuration failures surface to the caller; anything the serving path
cannot recover from is re-raised as EngineUnavailableError so callers never
receive a silently truncated context.
"""
from __future__ import annotations


class NavigatorError(Exception):
    """Base class for all statute navigator errors."""


class TransientRetrievalError(NavigatorError):
    """An embedding or index call timed out, was rate limited, or failed."""


class ConfigurationError(NavigatorError):
    """Missing corpus, missing index table, or invalid configuration."""


class EmptyCorpusError(ConfigurationError):
    """The source corpus produced zero chunks (or zero embedded records)."""


class PartialBatchFailure(NavigatorError):
    """At least one embedding in a batch failed; the batch is not committed."""

    def __init__(self, batch_number: int, failed: int, total: int, cause: BaseException | None = None) -> None:
        self.batch_number = batch_number
        self.failed = failed
        self.total = total
        self.cause = cause
        super().__init__(
            f"Batch {batch_number}: {failed}/{total} embedding call(s) failed"
            + (f" ({cause!r})" if cause is not None else "")
        )


class ExtractionFailure(NavigatorError):
    """An uploaded document could not be turned into text."""


class EngineUnavailableError(NavigatorError):
    """The serving path cannot produce a complete answer context."""


class DimensionMismatchError(NavigatorError, ValueError):
    """A vector's dimension differs from the one its table or embedding model declares."""

    def __init__(self, table: str, expected: int, actual: int) -> None:
        self.table = table
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"'{table}' expects {expected}-dimensional vectors, got {actual}"
        )
