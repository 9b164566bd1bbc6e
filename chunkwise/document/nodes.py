"""
Content tree node kinds.

A content tree is a JSON-compatible dict such as
``{"type": "doc", "content": [...]}``. Node types are plain strings; this
module maps them onto a closed set of kinds so the rest of the package can
branch on an enum instead of comparing strings everywhere.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class NodeKind(str, Enum):
    DOC = "doc"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BULLET_LIST = "bulletList"
    ORDERED_LIST = "orderedList"
    LIST_ITEM = "listItem"
    BLOCKQUOTE = "blockquote"
    CODE_BLOCK = "codeBlock"
    HORIZONTAL_RULE = "horizontalRule"
    HARD_BREAK = "hardBreak"
    TEXT = "text"
    IMAGE = "image"
    TABLE = "table"
    TABLE_ROW = "tableRow"
    TABLE_HEADER = "tableHeader"
    TABLE_CELL = "tableCell"
    UNKNOWN = "unknown"


_KIND_BY_TYPE = {kind.value: kind for kind in NodeKind if kind is not NodeKind.UNKNOWN}

LIST_KINDS = frozenset({NodeKind.BULLET_LIST, NodeKind.ORDERED_LIST})

# Containers whose interior is never cut by the planner
NO_SPLIT_KINDS = frozenset({
    NodeKind.BULLET_LIST,
    NodeKind.ORDERED_LIST,
    NodeKind.BLOCKQUOTE,
    NodeKind.CODE_BLOCK,
})

# Descending into the children of these raises the nesting level
NESTING_KINDS = frozenset({
    NodeKind.BULLET_LIST,
    NodeKind.ORDERED_LIST,
    NodeKind.BLOCKQUOTE,
    NodeKind.LIST_ITEM,
})


def classify(node: Any) -> NodeKind:
    """Return the NodeKind for a node dict (UNKNOWN for anything unrecognised)."""
    if not isinstance(node, dict):
        return NodeKind.UNKNOWN
    return _KIND_BY_TYPE.get(node.get("type"), NodeKind.UNKNOWN)


def node_children(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = node.get("content")
    return content if isinstance(content, list) else []


def empty_document() -> Dict[str, Any]:
    return {"type": "doc", "content": []}


def find_document_problem(tree: Any) -> Optional[str]:
    """Describe a structural problem in a document, or None if it is well formed.

    Checks that the root is a ``doc`` node whose content is a list, and that
    every node below it is a dict with a non-empty string ``type`` and, when
    present, a list ``content``.
    """
    if not isinstance(tree, dict):
        return f"document must be an object, got {type(tree).__name__}"
    if tree.get("type") != NodeKind.DOC.value:
        return f"document root must have type 'doc', got {tree.get('type')!r}"
    content = tree.get("content", [])
    if not isinstance(content, list):
        return "document content must be a list"

    stack = [(node, f"content[{i}]") for i, node in enumerate(content)]
    while stack:
        node, path = stack.pop()
        if not isinstance(node, dict):
            return f"{path} must be an object"
        node_type = node.get("type")
        if not isinstance(node_type, str) or not node_type:
            return f"{path} has no type"
        children = node.get("content")
        if children is None:
            continue
        if not isinstance(children, list):
            return f"{path}.content must be a list"
        stack.extend((child, f"{path}.content[{i}]") for i, child in enumerate(children))
    return None
