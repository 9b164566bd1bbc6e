"""Errors raised while converting between content trees and Markdown."""


class ConversionError(Exception):
    """Base class for content tree conversion failures."""


class LinearizationError(ConversionError):
    """The content tree has a shape that cannot be projected to text."""


class DelinearizationError(ConversionError):
    """Text could not be parsed back into a content tree."""
