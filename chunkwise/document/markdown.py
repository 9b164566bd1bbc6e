"""
Markdown codec for content trees.

MarkdownConverter writes content tree nodes as Markdown and reads Markdown
back into nodes. The dialect is the one translation models handle best:
ATX headings, ``---`` rules, fenced code, ``>`` quotes, ``-``/``1.`` lists,
``**bold**``, ``*italic*``, ``~~strike~~``, backtick code and ``[text](href)``
links. Tables are carried as HTML (see html_tables) and nodes without a
Markdown form are carried as opaque HTML comments.

Build one converter and pass it to whoever needs it; it holds no per-call
state.
"""

import re
from itertools import groupby
from typing import Any, Dict, List, Optional, Tuple

from chunkwise.document.exceptions import DelinearizationError, LinearizationError
from chunkwise.document.fragments import (
    OPAQUE_BLOCK_PATTERN,
    OPAQUE_INLINE_PATTERN,
    canonical_marks,
    decode_opaque,
    encode_opaque,
    make_mark,
    mark_href,
    merge_text_nodes,
    text_node,
)
from chunkwise.document.html_tables import html_to_table, table_to_html
from chunkwise.document.nodes import LIST_KINDS, NodeKind, classify, node_children
from chunkwise.logger import get_logger

logger = get_logger(__name__)

TRANSLATION_START_MARKER = "---TRANSLATION_START---"
TRANSLATION_END_MARKER = "---TRANSLATION_END---"

EMPTY_PARAGRAPH = "<br>"

# Characters that carry inline meaning and are backslash-escaped in plain text
_ESCAPED_CHARS = set("\\*`~[]<")
# Anything after a backslash that the parser treats as a literal
_UNESCAPABLE_CHARS = set("\\*`~[]<>#-+.()!_{}|\"' \t")

_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*([^`\s]*)[^`]*$")
_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_HR_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_LIST_RE = re.compile(r"^( {0,3})([-*+]|\d{1,9}[.)])([ \t]+|$)")
_IMAGE_RE = re.compile(
    r'^ {0,3}!\[((?:\\.|[^\\\]])*)\]\(((?:\\.|[^\\()\s])*)(?:[ \t]+"((?:\\.|[^\\"])*)")?\)[ \t]*$'
)
_BR_LINE_RE = re.compile(r"^ {0,3}<br\s*/?>[ \t]*$", re.IGNORECASE)
_BR_INLINE_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_OPAQUE_LINE_RE = re.compile(r"^ {0,3}" + OPAQUE_BLOCK_PATTERN.pattern + r"[ \t]*$")
_LINE_START_RE = re.compile(r"^(?:([#>+-]|!(?=\[))|(\d+)(?=[.)]))")
_UNESCAPE_RE = re.compile(r"\\(.)")
_TRAILING_SPACE_RE = re.compile(r"(?<!\\)[ \t]+$")

# Toggle delimiters in the order they are opened
_MARK_DELIMITERS = {"bold": "**", "italic": "*", "strike": "~~"}
# Marks toggled by a delimiter run of a given length
_STAR_RUNS = {1: ("italic",), 2: ("bold",), 3: ("bold", "italic")}
_TILDE_RUNS = {2: ("strike",)}


def _escape_text(text: str) -> str:
    return "".join("\\" + ch if ch in _ESCAPED_CHARS else ch for ch in text)


def _escape_line_start(line: str) -> str:
    """Stop a paragraph line from reading as a heading, quote, list item, rule or image.

    Leading spaces and tabs are escaped so the parser keeps them.
    """
    body = line.lstrip(" \t")
    if body != line:
        return "".join("\\" + ch for ch in line[:len(line) - len(body)]) + body
    match = _LINE_START_RE.match(line)
    if not match:
        return line
    symbol, digits = match.groups()
    if symbol:
        return f"\\{symbol}{line[match.end():]}"
    return f"{digits}\\{line[match.end():]}"


def _unescape(text: str) -> str:
    return _UNESCAPE_RE.sub(lambda m: m.group(1), text)


def _indent_width(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _dedent(line: str, width: int) -> str:
    return line[min(width, _indent_width(line)):]


def _code_span(code: str) -> str:
    longest = max((len(run) for run in re.findall(r"`+", code)), default=0)
    fence = "`" * (longest + 1)
    if code.startswith(("`", " ")) or code.endswith(("`", " ")):
        return f"{fence} {code} {fence}"
    return f"{fence}{code}{fence}"


def _link_href(node: Dict[str, Any]) -> Optional[str]:
    if classify(node) is not NodeKind.TEXT:
        return None
    for mark in canonical_marks(node.get("marks")):
        if mark["type"] == "link":
            return mark_href(mark)
    return None


class MarkdownConverter:
    """Converts content tree nodes to Markdown and back."""

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize_document(self, tree: Dict[str, Any]) -> str:
        return self.serialize_blocks(node_children(tree))

    def serialize_blocks(self, nodes: List[Dict[str, Any]]) -> str:
        return "\n\n".join(self.serialize_block(node) for node in nodes)

    def serialize_block(self, node: Any) -> str:
        self._check_node(node)
        kind = classify(node)

        if kind is NodeKind.PARAGRAPH:
            inline = self.serialize_inline(node_children(node))
            if not inline:
                return EMPTY_PARAGRAPH
            return "\n".join(_escape_line_start(line) for line in inline.split("\n"))

        if kind is NodeKind.HEADING:
            level = (node.get("attrs") or {}).get("level", 1)
            if not isinstance(level, int) or not 1 <= level <= 6:
                level = 1
            inline = self.serialize_inline(node_children(node), hard_break=EMPTY_PARAGRAPH)
            return "#" * level + (f" {inline}" if inline else "")

        if kind is NodeKind.HORIZONTAL_RULE:
            return "---"

        if kind is NodeKind.CODE_BLOCK:
            return self._serialize_code_block(node)

        if kind is NodeKind.BLOCKQUOTE:
            body = self.serialize_blocks(node_children(node))
            if not body:
                return ">"
            return "\n".join(f"> {line}" if line else ">" for line in body.split("\n"))

        if kind in LIST_KINDS:
            items = node_children(node)
            if not items:
                raise LinearizationError(f"{node['type']} has no items")
            return "\n".join(self.serialize_list_item(node, i) for i in range(len(items)))

        if kind is NodeKind.IMAGE:
            return self._serialize_image(node)

        if kind is NodeKind.TABLE:
            return table_to_html(node)

        if kind in (NodeKind.TEXT, NodeKind.HARD_BREAK):
            raise LinearizationError(f"Inline node {node['type']!r} found where a block was expected")

        if kind is NodeKind.DOC:
            raise LinearizationError("Nested doc node")

        return encode_opaque(node)

    def serialize_list_item(self, list_node: Dict[str, Any], index: int) -> str:
        """Serialize one item of a list, numbered as it would be inside the whole list."""
        item = node_children(list_node)[index]
        self._check_node(item)
        if classify(item) is not NodeKind.LIST_ITEM:
            raise LinearizationError(f"List children must be listItem nodes, got {item.get('type')!r}")

        if classify(list_node) is NodeKind.ORDERED_LIST:
            start = (list_node.get("attrs") or {}).get("start", 1)
            if not isinstance(start, int):
                start = 1
            marker = f"{start + index}. "
        else:
            marker = "- "

        parts = []
        for position, child in enumerate(node_children(item)):
            if position:
                parts.append("\n" if classify(child) in LIST_KINDS else "\n\n")
            parts.append(self.serialize_block(child))
        body = "".join(parts)
        if not body:
            return marker.rstrip()

        pad = " " * len(marker)
        lines = body.split("\n")
        rendered = [marker + lines[0]]
        rendered.extend(pad + line if line else "" for line in lines[1:])
        return "\n".join(rendered)

    def serialize_inline(self, nodes: List[Dict[str, Any]], hard_break: str = "\\\n") -> str:
        out = []
        for href, group in groupby(nodes, key=_link_href):
            inner = self._serialize_mark_run(list(group), hard_break)
            if href is None:
                out.append(inner)
            else:
                escaped_href = href.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
                out.append(f"[{inner}]({escaped_href})")
        return "".join(out)

    def _serialize_mark_run(self, nodes: List[Dict[str, Any]], hard_break: str) -> str:
        """Serialize inline nodes, writing a delimiter only where a mark starts or ends.

        A mark is never closed and reopened at the same position, so every
        run of ``*`` between two texts toggles each of bold and italic at
        most once, which is what parse_inline relies on.
        """
        out = []
        open_marks = []
        for node in nodes:
            self._check_node(node)
            kind = classify(node)
            if kind is NodeKind.HARD_BREAK:
                out.append(hard_break)
                continue
            if kind is not NodeKind.TEXT:
                out.append(encode_opaque(node, inline=True))
                continue

            text = node.get("text")
            if not isinstance(text, str):
                raise LinearizationError("Text node without a text string")
            if not text:
                continue

            dropped = [m.get("type") for m in node.get("marks") or []
                       if isinstance(m, dict) and m.get("type") not in _MARK_DELIMITERS
                       and m.get("type") not in ("link", "code")]
            if dropped:
                logger.debug(f"Dropping marks without a Markdown form: {dropped}")

            mark_types = [m["type"] for m in canonical_marks(node.get("marks"))]
            wanted = [t for t in _MARK_DELIMITERS if t in mark_types]
            closing = [t for t in reversed(open_marks) if t not in wanted]
            opening = [t for t in wanted if t not in open_marks]
            out.extend(_MARK_DELIMITERS[t] for t in closing)
            out.extend(_MARK_DELIMITERS[t] for t in opening)
            open_marks = [t for t in open_marks if t in wanted] + opening

            out.append(_code_span(text) if "code" in mark_types else _escape_text(text))

        out.extend(_MARK_DELIMITERS[t] for t in reversed(open_marks))
        return "".join(out)

    def _serialize_code_block(self, node: Dict[str, Any]) -> str:
        text = "".join(
            child.get("text", "") for child in node_children(node)
            if classify(child) is NodeKind.TEXT
        )
        language = (node.get("attrs") or {}).get("language") or ""
        longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
        fence = "`" * max(3, longest + 1)
        if text:
            return f"{fence}{language}\n{text}\n{fence}"
        return f"{fence}{language}\n{fence}"

    def _serialize_image(self, node: Dict[str, Any]) -> str:
        attrs = node.get("attrs") or {}
        src = attrs.get("src") or ""
        alt = attrs.get("alt") or ""
        title = attrs.get("title")
        alt = alt.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")
        src = (src.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
               .replace(" ", "%20"))
        rendered = f"![{alt}]({src}"
        if title:
            rendered += ' "' + title.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return rendered + ")"

    def _check_node(self, node: Any) -> None:
        if not isinstance(node, dict):
            raise LinearizationError(f"Node must be an object, got {type(node).__name__}")
        node_type = node.get("type")
        if not isinstance(node_type, str) or not node_type:
            raise LinearizationError("Node without a type")
        if "content" in node and not isinstance(node["content"], list):
            raise LinearizationError(f"{node_type} content must be a list")
        if "marks" in node and node["marks"] is not None and not isinstance(node["marks"], list):
            raise LinearizationError(f"{node_type} marks must be a list")

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_document(self, markdown: str) -> Dict[str, Any]:
        if not isinstance(markdown, str):
            raise DelinearizationError(f"Markdown must be a string, got {type(markdown).__name__}")
        lines = markdown.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        return {"type": "doc", "content": self.parse_blocks(lines)}

    def parse_blocks(self, lines: List[str]) -> List[Dict[str, Any]]:
        blocks = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line.strip():
                i += 1
                continue

            if _FENCE_RE.match(line):
                node, i = self._parse_code_block(lines, i)
            elif _OPAQUE_LINE_RE.match(line):
                node = decode_opaque(_OPAQUE_LINE_RE.match(line).group(1))
                i += 1
            elif line.lstrip().lower().startswith("<table"):
                node, i = self._parse_table(lines, i)
            elif _HEADING_RE.match(line):
                match = _HEADING_RE.match(line)
                node = {"type": "heading", "attrs": {"level": len(match.group(1))}}
                inline = self.parse_inline(match.group(2) or "")
                if inline:
                    node["content"] = inline
                i += 1
            elif _HR_RE.match(line):
                node = {"type": "horizontalRule"}
                i += 1
            elif line.lstrip().startswith(">"):
                node, i = self._parse_blockquote(lines, i)
            elif _LIST_RE.match(line):
                node, i = self._parse_list(lines, i)
            elif _BR_LINE_RE.match(line):
                node = {"type": "paragraph"}
                i += 1
            elif _IMAGE_RE.match(line):
                node = self._parse_image(_IMAGE_RE.match(line))
                i += 1
            else:
                node, i = self._parse_paragraph(lines, i)
            blocks.append(node)
        return blocks

    def _starts_block(self, line: str) -> bool:
        return bool(
            _FENCE_RE.match(line)
            or _OPAQUE_LINE_RE.match(line)
            or line.lstrip().lower().startswith("<table")
            or _HEADING_RE.match(line)
            or _HR_RE.match(line)
            or line.lstrip().startswith(">")
            or _LIST_RE.match(line)
            or _BR_LINE_RE.match(line)
            or _IMAGE_RE.match(line)
        )

    def _parse_paragraph(self, lines: List[str], i: int) -> Tuple[Dict[str, Any], int]:
        collected = [lines[i].lstrip(" \t")]
        i += 1
        while i < len(lines) and lines[i].strip() and not self._starts_block(lines[i]):
            collected.append(lines[i].lstrip(" \t"))
            i += 1
        node = {"type": "paragraph"}
        inline = self.parse_inline(_TRAILING_SPACE_RE.sub("", "\n".join(collected)))
        if inline:
            node["content"] = inline
        return node, i

    def _parse_code_block(self, lines: List[str], i: int) -> Tuple[Dict[str, Any], int]:
        match = _FENCE_RE.match(lines[i])
        indent = len(match.group(1))
        fence = match.group(2)
        language = match.group(3)
        closing = re.compile(r"^ {0,3}" + re.escape(fence[0]) + "{" + str(len(fence)) + r",}[ \t]*$")

        body = []
        j = i + 1
        while j < len(lines):
            if closing.match(lines[j]):
                break
            body.append(_dedent(lines[j], indent))
            j += 1
        else:
            raise DelinearizationError(f"Unclosed code fence opened on line {i + 1}")

        node = {"type": "codeBlock"}
        if language:
            node["attrs"] = {"language": language}
        text = "\n".join(body)
        if text:
            node["content"] = [{"type": "text", "text": text}]
        return node, j + 1

    def _parse_table(self, lines: List[str], i: int) -> Tuple[Dict[str, Any], int]:
        collected = []
        j = i
        while j < len(lines):
            collected.append(lines[j])
            if "</table>" in lines[j].lower():
                break
            j += 1
        else:
            raise DelinearizationError(f"Unclosed <table> opened on line {i + 1}")
        return html_to_table("\n".join(collected)), j + 1

    def _parse_blockquote(self, lines: List[str], i: int) -> Tuple[Dict[str, Any], int]:
        inner = []
        while i < len(lines) and lines[i].lstrip().startswith(">"):
            stripped = lines[i].lstrip()[1:]
            inner.append(stripped[1:] if stripped.startswith(" ") else stripped)
            i += 1
        node = {"type": "blockquote"}
        content = self.parse_blocks(inner)
        if content:
            node["content"] = content
        return node, i

    def _parse_list(self, lines: List[str], i: int) -> Tuple[Dict[str, Any], int]:
        first = _LIST_RE.match(lines[i])
        ordered = first.group(2)[0].isdigit()
        items = []

        while i < len(lines):
            match = _LIST_RE.match(lines[i])
            if not match or match.group(2)[0].isdigit() != ordered or _HR_RE.match(lines[i]):
                break
            spacing = match.group(3)
            if not spacing or len(spacing) > 4:
                spacing = " "
            offset = len(match.group(1)) + len(match.group(2)) + len(spacing)
            continuation = min(offset, 2)

            body = [lines[i][offset:]]
            i += 1
            while i < len(lines):
                line = lines[i]
                if not line.strip():
                    j = i
                    while j < len(lines) and not lines[j].strip():
                        j += 1
                    if j < len(lines) and _indent_width(lines[j]) >= continuation:
                        body.extend("" for _ in range(i, j))
                        i = j
                        continue
                    break
                if _indent_width(line) >= continuation:
                    body.append(_dedent(line, offset))
                    i += 1
                    continue
                if self._starts_block(line):
                    break
                # Lazy paragraph continuation
                body.append(line)
                i += 1

            items.append({"type": "listItem", "content": self.parse_blocks(body)})

        if ordered:
            start = int(first.group(2)[:-1])
            return {"type": "orderedList", "attrs": {"start": start}, "content": items}, i
        return {"type": "bulletList", "content": items}, i

    def _parse_image(self, match) -> Dict[str, Any]:
        alt, src, title = match.groups()
        attrs = {"src": _unescape(src).replace("%20", " ")}
        if alt:
            attrs["alt"] = _unescape(alt)
        if title is not None:
            attrs["title"] = _unescape(title)
        return {"type": "image", "attrs": attrs}

    def parse_inline(self, text: str, base_marks: Optional[List[Dict[str, Any]]] = None,
                     literal: frozenset = frozenset()) -> List[Dict[str, Any]]:
        """Parse inline Markdown into text, hardBreak and opaque nodes.

        Emphasis delimiters toggle their mark. A delimiter left open at the
        end is re-read as literal text so that a stray ``*`` does not
        italicise the rest of the paragraph.
        """
        base_marks = list(base_marks or [])
        nodes = []
        active = {}
        buffer = []

        def flush():
            if buffer:
                nodes.append(text_node("".join(buffer), base_marks + list(active.values())))
                buffer.clear()

        def toggle(mark_type):
            flush()
            if mark_type in active:
                del active[mark_type]
            else:
                active[mark_type] = make_mark(mark_type)

        n = len(text)
        i = 0
        while i < n:
            ch = text[i]

            if ch == "\\":
                if i + 1 == n or text[i + 1] == "\n":
                    flush()
                    nodes.append({"type": "hardBreak"})
                    i += 2
                    continue
                if text[i + 1] in _UNESCAPABLE_CHARS:
                    buffer.append(text[i + 1])
                    i += 2
                    continue
                buffer.append(ch)
                i += 1
                continue

            if ch == "\n":
                if buffer and "".join(buffer).endswith("  "):
                    trimmed = "".join(buffer).rstrip(" ")
                    buffer.clear()
                    buffer.append(trimmed)
                    flush()
                    nodes.append({"type": "hardBreak"})
                else:
                    buffer.append(" ")
                i += 1
                continue

            if ch == "<":
                match = OPAQUE_INLINE_PATTERN.match(text, i) or OPAQUE_BLOCK_PATTERN.match(text, i)
                if match:
                    flush()
                    nodes.append(decode_opaque(match.group(1)))
                    i = match.end()
                    continue
                match = _BR_INLINE_RE.match(text, i)
                if match:
                    flush()
                    nodes.append({"type": "hardBreak"})
                    i = match.end()
                    continue

            if ch == "`":
                run = len(text[i:]) - len(text[i:].lstrip("`"))
                closing = re.compile(r"(?<!`)" + "`" * run + r"(?!`)")
                match = closing.search(text, i + run)
                if match:
                    flush()
                    code = text[i + run:match.start()].replace("\n", " ")
                    if len(code) > 1 and code.startswith(" ") and code.endswith(" ") and code.strip():
                        code = code[1:-1]
                    nodes.append(text_node(code, base_marks + list(active.values()) + [make_mark("code")]))
                    i = match.end()
                    continue
                buffer.append("`" * run)
                i += run
                continue

            if ch == "*" or ch == "~":
                run = len(text[i:]) - len(text[i:].lstrip(ch))
                toggled = _STAR_RUNS.get(run) if ch == "*" else _TILDE_RUNS.get(run)
                if toggled and not literal.intersection(toggled):
                    for mark_type in toggled:
                        toggle(mark_type)
                else:
                    buffer.append(ch * run)
                i += run
                continue

            if ch == "[":
                link = self._match_link(text, i)
                if link:
                    label, href, end = link
                    flush()
                    link_marks = base_marks + list(active.values()) + [make_mark("link", href)]
                    nodes.extend(self.parse_inline(label, link_marks))
                    i = end
                    continue

            buffer.append(ch)
            i += 1

        flush()
        if active:
            return self.parse_inline(text, base_marks, literal | frozenset(active))
        return merge_text_nodes(nodes)

    def _match_link(self, text: str, i: int) -> Optional[Tuple[str, str, int]]:
        """Match ``[label](href)`` starting at i; returns (label, href, end) or None."""
        depth = 0
        j = i
        while j < len(text):
            ch = text[j]
            if ch == "\\":
                j += 2
                continue
            if ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        else:
            return None
        if j + 1 >= len(text) or text[j + 1] != "(":
            return None

        k = j + 2
        parens = 0
        while k < len(text):
            ch = text[k]
            if ch == "\\":
                k += 2
                continue
            if ch == "(":
                parens += 1
            elif ch == ")":
                if parens == 0:
                    break
                parens -= 1
            elif ch == "\n":
                return None
            k += 1
        else:
            return None

        label = text[i + 1:j]
        destination = text[j + 2:k].strip()
        titled = re.match(r'^(\S+)\s+"(?:\\.|[^\\"])*"$', destination)
        if titled:
            destination = titled.group(1)
        return label, _unescape(destination), k + 1


def normalize_horizontal_rules(markdown: str) -> str:
    """Put blank lines around ``---`` rules outside fenced code.

    Without them a rule under a paragraph reads as a setext heading, and an
    image directly followed by a rule gets merged into one block.
    """
    lines = markdown.split("\n")
    out = []
    fence = None
    for index, line in enumerate(lines):
        stripped = line.strip()
        if fence:
            if re.match(re.escape(fence[0]) + "{" + str(len(fence)) + r",}$", stripped):
                fence = None
            out.append(line)
            continue
        opener = re.match(r"^(`{3,}|~{3,})", stripped)
        if opener:
            fence = opener.group(1)
            out.append(line)
            continue

        indent = line[:len(line) - len(line.lstrip())]
        glued = re.match(r"^(!\[[^\]]*\]\([^)]*\))\s*(-{3,})$", stripped)
        if glued:
            if out and out[-1].strip():
                out.append("")
            out.extend([indent + glued.group(1), "", indent + glued.group(2)])
            if index + 1 < len(lines) and lines[index + 1].strip():
                out.append("")
            continue

        if re.match(r"^-{3,}$", stripped):
            if out and out[-1].strip():
                out.append("")
            out.append(line)
            if index + 1 < len(lines) and lines[index + 1].strip():
                out.append("")
            continue

        out.append(line)
    return "\n".join(out)


def extract_translation_markdown(response_text: str) -> str:
    """Return the Markdown between the translation markers.

    Falls back to the whole (stripped) response when the model skipped the
    markers, dropping a wrapping ```markdown fence if there is one.
    """
    start = response_text.find(TRANSLATION_START_MARKER)
    if start != -1:
        body_start = start + len(TRANSLATION_START_MARKER)
        end = response_text.find(TRANSLATION_END_MARKER, body_start)
        if end == -1:
            logger.warning("Translation end marker missing; using everything after the start marker")
            return response_text[body_start:].strip()
        return response_text[body_start:end].strip()

    logger.warning("Translation markers missing from response; using the raw response")
    stripped = response_text.strip()
    fenced = re.match(r"^```(?:markdown|md)?\s*\n(.*)\n```$", stripped, re.DOTALL)
    if fenced:
        return fenced.group(1).strip()
    return stripped


def detect_markdown_truncation(markdown: str) -> bool:
    """Heuristic check for output that was cut off mid-generation."""
    fence_count = len(re.findall(r"^\s*```", markdown, re.MULTILINE))
    if fence_count % 2 == 1:
        return True

    tail = markdown.rstrip()[-50:]
    # "[text" with no closing bracket, or "](url" with no closing paren
    if re.search(r"(?<!\\)\[[^\]]*$", tail):
        return True
    if re.search(r"\]\([^)]*$", tail):
        return True
    return False
