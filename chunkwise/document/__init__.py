"""
Document module - content trees and their Markdown projection

This module provides:
- NodeKind: closed set of content tree node kinds
- TokenEstimator: CJK-aware token estimation
- MarkdownConverter: content tree <-> Markdown codec
- DocumentLinearizer: segmented projection used for chunk planning
"""

from chunkwise.document.exceptions import ConversionError, DelinearizationError, LinearizationError
from chunkwise.document.linearizer import DocumentLinearizer, boundary_for
from chunkwise.document.markdown import (
    MarkdownConverter,
    detect_markdown_truncation,
    extract_translation_markdown,
    normalize_horizontal_rules,
)
from chunkwise.document.nodes import NodeKind, classify, find_document_problem
from chunkwise.document.projection import BoundaryType, LinearProjection, Segment
from chunkwise.document.tokens import TokenEstimator, estimate_tokens
