"""Errors raised by the chunked translation pipeline."""


class PipelineCancelledError(Exception):
    """The run was stopped by a cancellation request."""

    def __init__(self, message: str = "Translation was cancelled", result=None):
        super().__init__(message)
        self.result = result


class MergeValidationError(Exception):
    """The merged document is not a well-formed content tree."""
