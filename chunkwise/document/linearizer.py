"""
Document linearization.

DocumentLinearizer projects a content tree onto Markdown segments tagged
with the boundary each segment starts at, and parses Markdown back into a
content tree. Lists yield one segment per item so the planner can weigh
them item by item; every other top-level node yields one segment.
"""

from typing import Any, Dict, List, Optional

from chunkwise.document.exceptions import DelinearizationError, LinearizationError
from chunkwise.document.markdown import MarkdownConverter, normalize_horizontal_rules
from chunkwise.document.nodes import LIST_KINDS, NodeKind, classify
from chunkwise.document.projection import BoundaryType, LinearProjection, Segment
from chunkwise.logger import get_logger

logger = get_logger(__name__)

_BOUNDARY_BY_KIND = {
    NodeKind.HEADING: BoundaryType.HEADING,
    NodeKind.HORIZONTAL_RULE: BoundaryType.HORIZONTAL_RULE,
    NodeKind.BLOCKQUOTE: BoundaryType.BLOCKQUOTE,
    NodeKind.CODE_BLOCK: BoundaryType.CODE_BLOCK,
}


def boundary_for(node: Dict[str, Any]) -> BoundaryType:
    """Boundary type a top-level node opens (lists open with BoundaryType.LIST)."""
    kind = classify(node)
    if kind in LIST_KINDS:
        return BoundaryType.LIST
    return _BOUNDARY_BY_KIND.get(kind, BoundaryType.PARAGRAPH)


class DocumentLinearizer:
    def __init__(self, converter: Optional[MarkdownConverter] = None):
        self.converter = converter or MarkdownConverter()

    def linearize(self, tree: Any) -> LinearProjection:
        """Project a document onto ordered segments.

        Raises:
            LinearizationError: the tree is not a well-formed document.
        """
        if not isinstance(tree, dict):
            raise LinearizationError(f"Document must be an object, got {type(tree).__name__}")
        if tree.get("type") != NodeKind.DOC.value:
            raise LinearizationError(f"Document root must have type 'doc', got {tree.get('type')!r}")
        content = tree.get("content", [])
        if content is None:
            content = []
        if not isinstance(content, list):
            raise LinearizationError("Document content must be a list")
        return self.linearize_nodes(content)

    def linearize_nodes(self, nodes: List[Any]) -> LinearProjection:
        segments = []
        for index, node in enumerate(nodes):
            segments.extend(self._segments_for(index, node))
        return LinearProjection(tuple(segments))

    def _segments_for(self, index: int, node: Any) -> List[Segment]:
        if not isinstance(node, dict):
            raise LinearizationError(f"Node {index} must be an object, got {type(node).__name__}")

        if classify(node) in LIST_KINDS:
            items = node.get("content")
            if not isinstance(items, list) or not items:
                raise LinearizationError(f"List at node {index} has no items")
            return [
                Segment(
                    source_node_indices=(index, item_index),
                    boundary_type=BoundaryType.LIST if item_index == 0 else BoundaryType.LIST_ITEM,
                    text=self.converter.serialize_list_item(node, item_index),
                )
                for item_index in range(len(items))
            ]

        return [Segment((index,), boundary_for(node), self.converter.serialize_block(node))]

    def delinearize(self, text: str) -> Dict[str, Any]:
        """Parse Markdown back into a document.

        Raises:
            DelinearizationError: the text cannot be parsed.
        """
        if not isinstance(text, str):
            raise DelinearizationError(f"Expected Markdown text, got {type(text).__name__}")
        return self.converter.parse_document(normalize_horizontal_rules(text))

    def to_markdown(self, tree: Any) -> str:
        return self.linearize(tree).text
