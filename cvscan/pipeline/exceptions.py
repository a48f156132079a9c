class IntakeError(Exception):
    """Base exception for page buffer and submission errors."""


class EmptyBufferError(IntakeError):
    """Raised when a submission is attempted with no pages."""


class PageLimitError(IntakeError):
    """Raised when appending to a page buffer that is already full."""


class IntakeResponseError(IntakeError):
    """Raised when the backend payload does not have the expected shape."""
