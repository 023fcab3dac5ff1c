"""
Error taxonomy for the relay core.

Rejections raised by the ingestion gateway carry no side effects. An
out-of-scope payload is not an error and is reported through
``IngestResult.ignored`` instead.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""

    detail = "relay error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class InvalidPayload(RelayError):
    """A required field is missing, empty or malformed."""

    detail = "Invalid message payload"


class MissingScope(RelayError):
    """The payload carries no group parent id."""

    detail = "Missing group parent id"


class PersistenceError(RelayError):
    """The storage layer failed while appending or querying."""

    detail = "Storage failure"
