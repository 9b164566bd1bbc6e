"""
Shared pieces of the Markdown and HTML codecs: text marks and opaque nodes.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from chunkwise.document.exceptions import DelinearizationError

# Outermost first; serialization wraps in this order and parsing reports marks in it
MARK_ORDER = ("link", "bold", "italic", "strike", "code")
SUPPORTED_MARKS = frozenset(MARK_ORDER)

OPAQUE_SUFFIX = "-->"
# Block-level and inline nodes use different tags so a paragraph holding a
# single inline node is not read back as a block
BLOCK_TAG = "chunkwise:node "
INLINE_TAG = "chunkwise:inline "
# The payload never contains '>' (it is escaped on the way out)
OPAQUE_BLOCK_PATTERN = re.compile(r"<!--chunkwise:node ([^>]*)-->")
OPAQUE_INLINE_PATTERN = re.compile(r"<!--chunkwise:inline ([^>]*)-->")


def make_mark(mark_type: str, href: Optional[str] = None) -> Dict[str, Any]:
    if mark_type == "link":
        return {"type": "link", "attrs": {"href": href or ""}}
    return {"type": mark_type}


def mark_href(mark: Dict[str, Any]) -> Optional[str]:
    attrs = mark.get("attrs") or {}
    href = attrs.get("href")
    return href if isinstance(href, str) else ""


def mark_identity(mark: Dict[str, Any]) -> tuple:
    if mark.get("type") == "link":
        return ("link", mark_href(mark))
    return (mark.get("type"), None)


def canonical_marks(marks: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep supported marks, one per type, in MARK_ORDER, reduced to what Markdown can carry."""
    by_type = {}
    for mark in marks or []:
        if not isinstance(mark, dict):
            continue
        mark_type = mark.get("type")
        if mark_type in SUPPORTED_MARKS and mark_type not in by_type:
            by_type[mark_type] = make_mark(mark_type, mark_href(mark) if mark_type == "link" else None)
    return [by_type[t] for t in MARK_ORDER if t in by_type]


def text_node(text: str, marks: Optional[Iterable[Dict[str, Any]]] = None) -> Dict[str, Any]:
    node = {"type": "text", "text": text}
    ordered = canonical_marks(marks or [])
    if ordered:
        node["marks"] = ordered
    return node


def merge_text_nodes(nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Join neighbouring text nodes that carry the same marks and drop empty ones."""
    merged = []
    for node in nodes:
        if node.get("type") == "text":
            if not node.get("text"):
                continue
            if merged and merged[-1].get("type") == "text":
                previous = merged[-1]
                same_marks = (
                    [mark_identity(m) for m in previous.get("marks", [])]
                    == [mark_identity(m) for m in node.get("marks", [])]
                )
                if same_marks:
                    merged[-1] = dict(previous, text=previous["text"] + node["text"])
                    continue
        merged.append(node)
    return merged


def encode_opaque(node: Dict[str, Any], inline: bool = False) -> str:
    """Serialize a node the codecs do not understand into a comment that survives translation."""
    payload = json.dumps(node, ensure_ascii=False, separators=(",", ":"))
    payload = payload.replace(">", "\\u003e")
    tag = INLINE_TAG if inline else BLOCK_TAG
    return f"<!--{tag}{payload}{OPAQUE_SUFFIX}"


def opaque_comment_payload(comment: str) -> Optional[str]:
    """Return the JSON payload of an HTML comment body written by encode_opaque, else None."""
    for tag in (BLOCK_TAG, INLINE_TAG):
        if comment.startswith(tag):
            return comment[len(tag):]
    return None


def decode_opaque(payload: str) -> Dict[str, Any]:
    try:
        node = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DelinearizationError(f"Unreadable opaque node: {e}") from e
    if not isinstance(node, dict) or not isinstance(node.get("type"), str):
        raise DelinearizationError("Opaque node payload is not a node object")
    return node
