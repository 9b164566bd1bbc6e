"""Token-bounded chunked translation of structured documents."""

__version__ = "0.1.0"
