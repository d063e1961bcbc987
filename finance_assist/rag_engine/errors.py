"""
Error kinds raised by the ingestion and answering pipeline.

Each kind carries the HTTP status it maps to when the API runs with precise
error statuses enabled.
"""

from typing import Optional


class AssistError(Exception):
    """Base class for classified pipeline failures."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source


class FetchError(AssistError):
    """A source locator could not be resolved or downloaded."""

    kind = "fetch_error"
    status_code = 502

    def __init__(self, message: str, source: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, source)
        if status_code is not None:
            self.status_code = status_code


class ParseError(AssistError):
    """Fetched content could not be turned into documents or chunks."""

    kind = "parse_error"
    status_code = 422


class StoreError(AssistError):
    """Embedding or vector store read/write failed."""

    kind = "store_error"
    status_code = 503


class LLMError(AssistError):
    """The chat completion call failed."""

    kind = "llm_error"
    status_code = 502

    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout
        if timeout:
            self.status_code = 504


def classify(error: Exception) -> AssistError:
    """Return error unchanged if already classified, else wrap it as an internal error."""
    if isinstance(error, AssistError):
        return error
    wrapped = AssistError(str(error) or error.__class__.__name__)
    wrapped.__cause__ = error
    return wrapped
