import pytest

from chunkwise.chunking import ChunkConfig, ChunkPlanner, calculate_complexity
from chunkwise.document import DelinearizationError, DocumentLinearizer
from chunkwise.document.nodes import NO_SPLIT_KINDS, classify

from conftest import (
    THREE_CHUNK_CONFIG,
    big_paragraph,
    bullet_list,
    doc,
    heading,
    paragraph,
    three_chunk_document,
)


def test_small_document_is_one_chunk():
    tree = doc(big_paragraph("a", 500))
    plan = ChunkPlanner().build_plan(tree, ChunkConfig())
    assert len(plan.chunks) == 1
    assert plan.was_chunked is False
    assert plan.chunks[0].nodes == tuple(tree["content"])
    assert plan.info.total_tokens == 500
    assert plan.info.should_chunk is False


def test_large_document_splits_at_paragraph_nearest_target():
    tree = three_chunk_document()
    config = ChunkConfig(target_chunk_tokens=8000, max_chunk_tokens=16384)
    chunks = ChunkPlanner().plan(tree, config)
    assert len(chunks) == 2
    assert chunks[0].nodes == tuple(tree["content"][:2])
    assert chunks[1].nodes == tuple(tree["content"][2:])
    assert [c.index for c in chunks] == [0, 1]


def test_estimated_tokens_include_overhead_and_expansion():
    chunks = ChunkPlanner().plan(doc(big_paragraph("a", 500)), ChunkConfig())
    # (500 + 500) * 1.3
    assert chunks[0].estimated_tokens == 1300


def test_empty_document_has_no_chunks():
    plan = ChunkPlanner().build_plan(doc(), ChunkConfig())
    assert plan.chunks == ()
    assert plan.was_chunked is False


def test_heading_beats_paragraph_boundary():
    # Cutting before node 2 (paragraph) or node 3 (heading) both land in the window
    tree = doc(
        big_paragraph("a", 2000),
        big_paragraph("b", 2000),
        big_paragraph("c", 500),
        heading(2, "Next part"),
        big_paragraph("d", 2000),
    )
    config = ChunkConfig(
        min_chunk_tokens=1000,
        target_chunk_tokens=4000,
        max_chunk_tokens=5000,
        overhead_per_chunk=0,
        expansion_factor=1.0,
    )
    chunks = ChunkPlanner().plan(tree, config)
    assert chunks[0].nodes == tuple(tree["content"][:3])
    assert chunks[1].nodes[0] == heading(2, "Next part")


def test_planning_is_deterministic():
    tree = three_chunk_document()
    planner = ChunkPlanner()
    assert planner.plan(tree, THREE_CHUNK_CONFIG) == planner.plan(tree, THREE_CHUNK_CONFIG)


def test_chunks_cover_document_in_order():
    tree = doc(
        big_paragraph("a", 3000),
        bullet_list(*["item %d %s" % (i, "x" * 400) for i in range(40)]),
        big_paragraph("b", 3000),
        heading(2, "Tail"),
        big_paragraph("c", 3000),
    )
    chunks = ChunkPlanner().plan(tree, THREE_CHUNK_CONFIG)
    assert len(chunks) > 1
    rebuilt = [node for chunk in chunks for node in chunk.nodes]
    assert rebuilt == tree["content"]


def test_no_split_regions_stay_whole():
    big_list = bullet_list(*["entry %d %s" % (i, "y" * 800) for i in range(30)])
    tree = doc(big_paragraph("a", 3000), big_list, big_paragraph("b", 3000))
    chunks = ChunkPlanner().plan(tree, THREE_CHUNK_CONFIG)
    holders = [c for c in chunks if big_list in c.nodes]
    assert len(holders) == 1
    for chunk in chunks:
        for node in chunk.nodes:
            if classify(node) in NO_SPLIT_KINDS:
                assert node == big_list


def test_chunks_respect_max_unless_single_node():
    tree = doc(*[big_paragraph(letter, 1500) for letter in "abcdefgh"])
    chunks = ChunkPlanner().plan(tree, THREE_CHUNK_CONFIG)
    for chunk in chunks:
        assert chunk.estimated_tokens <= THREE_CHUNK_CONFIG.max_chunk_tokens or len(chunk.nodes) == 1


def test_oversized_node_becomes_its_own_chunk():
    tree = doc(big_paragraph("a", 3000), big_paragraph("b", 9000), big_paragraph("c", 3000))
    chunks = ChunkPlanner().plan(tree, THREE_CHUNK_CONFIG)
    assert [len(c.nodes) for c in chunks] == [1, 1, 1]
    assert chunks[1].estimated_tokens == 9000


def test_complexity_counts_list_items_and_depth():
    tree = doc(bullet_list("a", "b"))
    # 2 items * 80 + depth 2 * 150
    assert calculate_complexity(tree) == 460


def test_complexity_is_capped():
    tree = doc(bullet_list(*["i"] * 100))
    assert calculate_complexity(tree) == 2500


def test_complex_documents_chunk_earlier():
    planner = ChunkPlanner()
    items = ["x" * 300 for _ in range(25)]
    tree = doc(bullet_list(*items))
    config = ChunkConfig()
    assert planner.adjusted_threshold(tree, config) == max(3000 - calculate_complexity(tree), 1000)
    assert planner.should_chunk(tree, config)
    assert not planner.should_chunk(doc(paragraph("x" * 7600)), config)


def test_unconvertible_document_falls_back_to_single_chunk():
    tree = doc(big_paragraph("a", 4000), {"type": "bulletList", "content": []}, big_paragraph("b", 4000))
    plan = ChunkPlanner().build_plan(tree, THREE_CHUNK_CONFIG)
    assert len(plan.chunks) == 1
    assert plan.was_chunked is False
    assert plan.chunks[0].nodes == tuple(tree["content"])


class RejectingLinearizer(DocumentLinearizer):
    """Parses everything except Markdown that starts with the given prefix."""

    def __init__(self, prefix):
        super().__init__()
        self.prefix = prefix

    def delinearize(self, text):
        if text.startswith(self.prefix):
            raise DelinearizationError("unreadable chunk")
        return super().delinearize(text)


def test_chunk_that_does_not_parse_back_falls_back_to_single_chunk():
    tree = three_chunk_document()
    assert len(ChunkPlanner().build_plan(tree, THREE_CHUNK_CONFIG).chunks) == 3

    plan = ChunkPlanner(linearizer=RejectingLinearizer("b")).build_plan(tree, THREE_CHUNK_CONFIG)
    assert len(plan.chunks) == 1
    assert plan.was_chunked is False
    assert plan.info.estimated_chunks == 1
    assert plan.chunks[0].nodes == tuple(tree["content"])


def test_chunk_config_validation():
    with pytest.raises(ValueError):
        ChunkConfig(min_chunk_tokens=5000, target_chunk_tokens=4000)
    with pytest.raises(ValueError):
        ChunkConfig(expansion_factor=0)
    with pytest.raises(ValueError):
        ChunkConfig.from_dict({"maxChunkTokens": "big"})


def test_chunk_config_from_dict_accepts_camel_case():
    config = ChunkConfig.from_dict({"targetChunkTokens": 6000, "overhead_per_chunk": 100, "unknown": 1})
    assert config.target_chunk_tokens == 6000
    assert config.overhead_per_chunk == 100
    assert config.max_chunk_tokens == 16384
