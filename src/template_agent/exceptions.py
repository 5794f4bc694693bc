"""Exception types shared across the template agent."""

from typing import List, Optional, Tuple


class OperationCancelled(Exception):
    """Raised when the caller's cancellation token has been triggered.

    Never retried and never downgraded to a per-item failure. Batch
    workflows attach whatever they finished before the cancellation as
    ``partial_result``.
    """

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
        self.partial_result = None


class MissingCredentialError(Exception):
    """Raised before any network call when no API key is configured."""
    pass


class LLMClientError(Exception):
    """Raised when a language model call fails after all retries."""
    pass


class WLOSearchError(Exception):
    """Raised when the WLO search endpoint cannot be queried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TemplateValidationFailed(Exception):
    """Raised when a template document does not pass validation."""

    def __init__(self, message: str, issues: Optional[List[Tuple[str, str]]] = None):
        super().__init__(message)
        self.issues = issues or []
