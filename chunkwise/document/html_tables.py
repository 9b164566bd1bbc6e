"""
Tables travel through Markdown as HTML.

Markdown pipe tables cannot hold multi-paragraph cells or spans, so a table
node is written as a single ``<table>`` line and read back with BeautifulSoup.
"""

import html
from typing import Any, Dict, List

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from chunkwise.document.exceptions import DelinearizationError, LinearizationError
from chunkwise.document.fragments import (
    INLINE_TAG,
    canonical_marks,
    decode_opaque,
    encode_opaque,
    make_mark,
    mark_href,
    merge_text_nodes,
    opaque_comment_payload,
    text_node,
)
from chunkwise.document.nodes import NodeKind, classify, node_children

_MARK_TAGS = {
    "bold": "strong",
    "italic": "em",
    "strike": "s",
    "code": "code",
}

_TAG_MARKS = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
    "s": "strike",
    "del": "strike",
    "strike": "strike",
    "code": "code",
}

_SPAN_ATTRS = ("colspan", "rowspan")


def table_to_html(node: Dict[str, Any]) -> str:
    rows = []
    for row in node_children(node):
        if classify(row) is not NodeKind.TABLE_ROW:
            raise LinearizationError(f"Table rows must be tableRow nodes, got {row.get('type')!r}")
        cells = []
        for cell in node_children(row):
            kind = classify(cell)
            if kind not in (NodeKind.TABLE_CELL, NodeKind.TABLE_HEADER):
                raise LinearizationError(f"Table cells must be tableCell or tableHeader nodes, got {cell.get('type')!r}")
            tag = "th" if kind is NodeKind.TABLE_HEADER else "td"
            cells.append(f"<{tag}{_span_attrs(cell)}>{_cell_body(cell)}</{tag}>")
        rows.append("<tr>" + "".join(cells) + "</tr>")
    return "<table>" + "".join(rows) + "</table>"


def _span_attrs(cell: Dict[str, Any]) -> str:
    attrs = cell.get("attrs") or {}
    rendered = ""
    for name in _SPAN_ATTRS:
        value = attrs.get(name)
        if isinstance(value, int) and value != 1:
            rendered += f' {name}="{value}"'
    return rendered


def _cell_body(cell: Dict[str, Any]) -> str:
    parts = []
    for block in node_children(cell):
        if classify(block) is NodeKind.PARAGRAPH:
            parts.append("<p>" + _inline_html(node_children(block)) + "</p>")
        else:
            parts.append(encode_opaque(block))
    return "".join(parts)


def _inline_html(nodes: List[Dict[str, Any]]) -> str:
    out = []
    for node in nodes:
        kind = classify(node)
        if kind is NodeKind.TEXT:
            text = node.get("text")
            if not isinstance(text, str):
                raise LinearizationError("Text node without a text string")
            rendered = html.escape(text, quote=False)
            marks = canonical_marks(node.get("marks"))
            for mark in reversed(marks):
                if mark["type"] == "link":
                    rendered = f'<a href="{html.escape(mark_href(mark))}">{rendered}</a>'
                else:
                    tag = _MARK_TAGS[mark["type"]]
                    rendered = f"<{tag}>{rendered}</{tag}>"
            out.append(rendered)
        elif kind is NodeKind.HARD_BREAK:
            out.append("<br>")
        else:
            out.append(encode_opaque(node, inline=True))
    return "".join(out)


def html_to_table(markup: str) -> Dict[str, Any]:
    """Parse a ``<table>`` fragment back into a table node."""
    soup = BeautifulSoup(markup, "html.parser")
    table = soup.find("table")
    if table is None:
        raise DelinearizationError("No <table> element found in table block")

    rows = []
    for tr in table.find_all("tr"):
        # Skip rows of nested tables
        if tr.find_parent("table") is not table:
            continue
        cells = []
        for cell in tr.find_all(["th", "td"], recursive=False):
            node = {"type": "tableHeader" if cell.name == "th" else "tableCell"}
            attrs = {}
            for name in _SPAN_ATTRS:
                value = cell.get(name)
                if value is not None:
                    try:
                        attrs[name] = int(value)
                    except ValueError:
                        raise DelinearizationError(f"Invalid {name} value {value!r} in table cell")
            if attrs:
                node["attrs"] = attrs
            blocks = _cell_blocks(cell)
            if blocks:
                node["content"] = blocks
            cells.append(node)
        rows.append({"type": "tableRow", "content": cells})
    return {"type": "table", "content": rows}


def _cell_blocks(cell: Tag) -> List[Dict[str, Any]]:
    blocks = []
    loose = []

    def flush_loose():
        inline = merge_text_nodes(loose)
        if any(n.get("type") != "text" or n["text"].strip() for n in inline):
            blocks.append(_paragraph(inline))
        loose.clear()

    for child in cell.children:
        if isinstance(child, Comment):
            payload = opaque_comment_payload(str(child))
            if payload is None:
                continue
            if str(child).startswith(INLINE_TAG):
                loose.append(decode_opaque(payload))
            else:
                flush_loose()
                blocks.append(decode_opaque(payload))
            continue
        if isinstance(child, Tag) and child.name == "p":
            flush_loose()
            blocks.append(_paragraph(merge_text_nodes(_inline_nodes(child, []))))
            continue
        # Text or inline markup outside a <p>
        loose.extend(_inline_nodes_of(child, []))
    flush_loose()
    return blocks


def _paragraph(inline: List[Dict[str, Any]]) -> Dict[str, Any]:
    node = {"type": "paragraph"}
    if inline:
        node["content"] = inline
    return node


def _inline_nodes(element: Tag, marks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    nodes = []
    for child in element.children:
        nodes.extend(_inline_nodes_of(child, marks))
    return nodes


def _inline_nodes_of(child, marks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if isinstance(child, Comment):
        payload = opaque_comment_payload(str(child))
        return [decode_opaque(payload)] if payload is not None else []
    if isinstance(child, NavigableString):
        text = str(child)
        return [text_node(text, marks)] if text else []
    if not isinstance(child, Tag):
        return []
    if child.name == "br":
        return [{"type": "hardBreak"}]
    if child.name == "a":
        return _inline_nodes(child, marks + [make_mark("link", child.get("href", ""))])
    mark_type = _TAG_MARKS.get(child.name)
    if mark_type:
        return _inline_nodes(child, marks + [make_mark(mark_type)])
    return _inline_nodes(child, marks)
