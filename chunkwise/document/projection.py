"""
Linear projection of a content tree: ordered text segments with the
structural boundary each one starts at.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class BoundaryType(Enum):
    """Structural boundary kinds with their split priority (lower is preferred)."""

    HEADING = ("heading", 1)
    HORIZONTAL_RULE = ("horizontalRule", 1)
    BLOCKQUOTE = ("blockquote", 2)
    LIST = ("list", 3)
    CODE_BLOCK = ("codeBlock", 3)
    PARAGRAPH = ("paragraph", 4)
    LIST_ITEM = ("listItem", 5)

    def __init__(self, label: str, priority: int):
        self.label = label
        self.priority = priority


@dataclass(frozen=True)
class Segment:
    # First entry is the top-level node index; deeper entries address children
    source_node_indices: Tuple[int, ...]
    boundary_type: BoundaryType
    text: str

    @property
    def top_level_index(self) -> int:
        return self.source_node_indices[0]


@dataclass(frozen=True)
class LinearProjection:
    segments: Tuple[Segment, ...] = ()

    @property
    def text(self) -> str:
        """Segments of one top-level node joined by newlines, nodes by a blank line."""
        parts = []
        previous = None
        for segment in self.segments:
            if previous is not None:
                parts.append("\n" if segment.top_level_index == previous else "\n\n")
            parts.append(segment.text)
            previous = segment.top_level_index
        return "".join(parts)

    def for_node(self, index: int) -> Tuple[Segment, ...]:
        return tuple(s for s in self.segments if s.top_level_index == index)

    def __len__(self) -> int:
        return len(self.segments)
