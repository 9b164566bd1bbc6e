import pytest

from chunkwise.document import (
    BoundaryType,
    DelinearizationError,
    DocumentLinearizer,
    LinearizationError,
    MarkdownConverter,
    detect_markdown_truncation,
    extract_translation_markdown,
    normalize_horizontal_rules,
)

from conftest import bullet_list, doc, heading, paragraph, text


LINK = {"type": "link", "attrs": {"href": "https://x.test/a"}}


def rich_document():
    return doc(
        heading(2, "Title"),
        paragraph(
            text("Hello "),
            text("bold", "bold"),
            text(" and "),
            text("both", "bold", "italic"),
            text(" "),
            text("gone", "strike"),
            text(" "),
            text("code", "code"),
            text(" "),
            text("link", LINK),
        ),
        paragraph(text("line one"), {"type": "hardBreak"}, text("line two")),
        {"type": "paragraph"},
        {
            "type": "bulletList",
            "content": [
                {"type": "listItem", "content": [paragraph("one")]},
                {
                    "type": "listItem",
                    "content": [
                        paragraph("two"),
                        {
                            "type": "orderedList",
                            "attrs": {"start": 1},
                            "content": [{"type": "listItem", "content": [paragraph("nested")]}],
                        },
                    ],
                },
            ],
        },
        {
            "type": "orderedList",
            "attrs": {"start": 3},
            "content": [
                {"type": "listItem", "content": [paragraph("x")]},
                {"type": "listItem", "content": [paragraph("y")]},
            ],
        },
        {"type": "blockquote", "content": [paragraph("quoted"), paragraph("more")]},
        {
            "type": "codeBlock",
            "attrs": {"language": "python"},
            "content": [{"type": "text", "text": "def f():\n    return 1"}],
        },
        {"type": "horizontalRule"},
        {"type": "image", "attrs": {"src": "https://img.test/a.png", "alt": "Alt text"}},
        {
            "type": "table",
            "content": [
                {
                    "type": "tableRow",
                    "content": [
                        {"type": "tableHeader", "content": [paragraph("Name")]},
                        {"type": "tableHeader", "content": [paragraph("Value")]},
                    ],
                },
                {
                    "type": "tableRow",
                    "content": [
                        {"type": "tableCell", "attrs": {"colspan": 2}, "content": [paragraph(text("wide", "bold"))]},
                    ],
                },
            ],
        },
        {"type": "mathBlock", "attrs": {"latex": "a > b"}},
        paragraph(text("see "), {"type": "mention", "attrs": {"id": "u1"}}),
        paragraph("text with <b> and [brackets] and a*b"),
        paragraph("# not a heading"),
        paragraph("1. not a list"),
        paragraph(text("!"), text("x", LINK)),
        {"type": "blockquote", "content": [paragraph(text("!"), text("x", LINK))]},
        {
            "type": "bulletList",
            "content": [
                {"type": "listItem", "content": [paragraph(text("!"), text("x", LINK))]},
                {"type": "listItem", "content": [paragraph("  indented item")]},
            ],
        },
        paragraph("    indented text"),
        paragraph(text("\tlead"), {"type": "hardBreak"}, text("  after break")),
        paragraph("   "),
    )


def test_round_trip_of_every_node_kind():
    linearizer = DocumentLinearizer()
    tree = rich_document()
    assert linearizer.delinearize(linearizer.to_markdown(tree)) == tree


def test_inline_marks_serialize_as_markdown():
    markdown = MarkdownConverter().serialize_block(rich_document()["content"][1])
    assert markdown == "Hello **bold** and ***both*** ~~gone~~ `code` [link](https://x.test/a)"


def test_line_starts_are_escaped():
    converter = MarkdownConverter()
    assert converter.serialize_block(paragraph(text("!"), text("x", LINK))) == "\\![x](https://x.test/a)"
    assert converter.serialize_block(paragraph("  two spaces")) == "\\ \\ two spaces"
    assert converter.parse_document("\\![x](https://x.test/a)") == doc(paragraph(text("!"), text("x", LINK)))


def test_empty_paragraph_is_br():
    assert MarkdownConverter().serialize_block({"type": "paragraph"}) == "<br>"


def test_ordered_list_numbers_from_start():
    tree = rich_document()
    assert MarkdownConverter().serialize_block(tree["content"][5]) == "3. x\n4. y"


def test_projection_matches_document_serialization():
    linearizer = DocumentLinearizer()
    tree = rich_document()
    projection = linearizer.linearize(tree)
    assert projection.text == linearizer.converter.serialize_document(tree)


def test_lists_project_one_segment_per_item():
    tree = doc(heading(1, "Intro"), bullet_list("a", "b", "c"), paragraph("end"))
    projection = DocumentLinearizer().linearize(tree)
    boundaries = [s.boundary_type for s in projection.segments]
    assert boundaries == [
        BoundaryType.HEADING,
        BoundaryType.LIST,
        BoundaryType.LIST_ITEM,
        BoundaryType.LIST_ITEM,
        BoundaryType.PARAGRAPH,
    ]
    assert [s.source_node_indices for s in projection.for_node(1)] == [(1, 0), (1, 1), (1, 2)]
    assert projection.text == "# Intro\n\n- a\n- b\n- c\n\nend"


def test_unknown_marks_are_dropped():
    tree = doc(paragraph(text("marked", "highlight")))
    linearizer = DocumentLinearizer()
    assert linearizer.delinearize(linearizer.to_markdown(tree)) == doc(paragraph("marked"))


def test_stray_emphasis_delimiter_stays_literal():
    assert MarkdownConverter().parse_inline("2 * 3 = 6") == [{"type": "text", "text": "2 * 3 = 6"}]


def test_setext_style_rule_in_translation_is_a_rule():
    tree = DocumentLinearizer().delinearize("Title\n---\nBody")
    assert tree == doc(paragraph("Title"), {"type": "horizontalRule"}, paragraph("Body"))


def test_linearize_rejects_non_document_root():
    with pytest.raises(LinearizationError):
        DocumentLinearizer().linearize({"type": "paragraph"})


def test_linearize_rejects_empty_list():
    with pytest.raises(LinearizationError):
        DocumentLinearizer().linearize(doc({"type": "bulletList", "content": []}))


def test_linearize_rejects_inline_node_at_block_level():
    with pytest.raises(LinearizationError):
        DocumentLinearizer().linearize(doc(text("loose")))


def test_delinearize_rejects_unclosed_fence():
    with pytest.raises(DelinearizationError):
        DocumentLinearizer().delinearize("```python\nprint(1)")


def test_delinearize_rejects_broken_opaque_node():
    with pytest.raises(DelinearizationError):
        DocumentLinearizer().delinearize("<!--chunkwise:node {broken-->")


def test_normalize_horizontal_rules_adds_blank_lines():
    assert normalize_horizontal_rules("Para\n---\nNext") == "Para\n\n---\n\nNext"


def test_normalize_horizontal_rules_leaves_code_alone():
    source = "```\na\n---\n```"
    assert normalize_horizontal_rules(source) == source


def test_normalize_horizontal_rules_splits_glued_image():
    assert normalize_horizontal_rules("![a](b.png)---") == "![a](b.png)\n\n---"


def test_extract_translation_markdown_between_markers():
    response = "Sure!\n---TRANSLATION_START---\n# Hola\n---TRANSLATION_END---\nBye"
    assert extract_translation_markdown(response) == "# Hola"


def test_extract_translation_markdown_without_markers():
    assert extract_translation_markdown("```markdown\n# Hola\n```") == "# Hola"
    assert extract_translation_markdown("  plain  ") == "plain"


def test_detect_markdown_truncation():
    assert detect_markdown_truncation("```python\nx = 1")
    assert detect_markdown_truncation("see [the docs")
    assert detect_markdown_truncation("see [the docs](https://x.test/")
    assert not detect_markdown_truncation("see [the docs](https://x.test/)")
    assert not detect_markdown_truncation("escaped \\[ bracket")
