"""
Translator Exceptions

Exception classes for the translator service.
Separated to avoid circular imports between service.py and providers.py.
"""


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ChunkTranslationError(TranslationError):
    """A single chunk could not be translated; recorded on the chunk."""
