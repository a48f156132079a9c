"""
Pipeline package for the CV scanner.

This package contains the components responsible for:
- Holding the captured pages in document order (buffer)
- Sending the page set to the CV analysis backend (submission)
- Validating the backend's answer (response)
- Sequencing the whole capture / review / processing flow (controller)
"""

from .buffer import PageBuffer
from .controller import IntakeController
from .exceptions import EmptyBufferError, IntakeError, IntakeResponseError, PageLimitError
from .response import parse_intake_payload
from .submission import SubmissionOrchestrator


__all__ = [
    "PageBuffer",
    "IntakeController",
    "EmptyBufferError",
    "IntakeError",
    "IntakeResponseError",
    "PageLimitError",
    "parse_intake_payload",
    "SubmissionOrchestrator",
]
