"""Exception types raised by the report pipeline.

Every error carries the HTTP status the API should answer with and a
message that is safe to show to end users.
"""
from __future__ import annotations


class ReportError(Exception):
    status_code: int = 500
    public_message: str = "Failed to generate report"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class InvalidQueryError(ReportError):
    status_code = 400
    public_message = "Query is required"


class ConfigurationError(ReportError):
    public_message = "Server configuration error"

    def __init__(self, message: str | None = None):
        super().__init__(message)
        if message:
            self.public_message = f"Server configuration error: {message}"


class UpstreamError(ReportError):
    public_message = "The language model service returned an error. Please try again later."

    def __init__(self, message: str | None = None, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class UpstreamRateLimitError(UpstreamError):
    public_message = (
        "The language model service is temporarily overloaded. Please try again later."
    )


class UpstreamTimeoutError(UpstreamError):
    public_message = "The language model service took too long to respond. Please try again."


class ContentFilteredError(UpstreamError):
    public_message = (
        "The request triggered the model's content safety filters. "
        "Please try rephrasing your question."
    )


class MalformedResponseError(UpstreamError):
    public_message = "The language model returned an empty or unreadable response."


class RefinementError(ReportError):
    public_message = "Failed to refine the search query"
