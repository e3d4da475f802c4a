"""Exception types for MonitorForge.

errors fall into two buckets: the ones that sink the whole batch and the
ones that belong to a single query. the service relies on this split to
decide whether sibling queries keep running.
"""


class MonitorForgeError(Exception):
    """Base exception for the monitorforge package."""


class BatchError(MonitorForgeError):
    """The batch as a whole is unusable - no partial results are returned."""


class QueryExecutionError(MonitorForgeError):
    """The remote call for one query failed or returned an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.args[0]} (status {self.status_code})"
        return self.args[0]


class QueryParseError(MonitorForgeError):
    """A response was valid json but could not be turned into frames."""


class CredentialError(MonitorForgeError):
    """Ambient default credentials could not be resolved."""


class QueryCancelledError(MonitorForgeError):
    """The caller cancelled the batch - no partial results are returned."""
