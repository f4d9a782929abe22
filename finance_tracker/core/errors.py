class StatementIngestError(Exception):
    """Base class for statement ingestion failures."""


class RateLimitExceeded(StatementIngestError):
    def __init__(self, message, *, key=None, remaining=0, limit=None):
        super().__init__(message)
        self.key = key
        self.remaining = remaining
        self.limit = limit


class BatchQuotaError(RateLimitExceeded):
    """Raised before a multi-file batch starts when the quota cannot cover it."""


class StatementProcessingError(StatementIngestError):
    """The AI extraction path could not produce a usable result."""
