import pytest

from chunkwise.chunking import ChunkMerger, ChunkStatus, MergeValidationError, validate_document
from chunkwise.chunking.types import Chunk

from conftest import doc, paragraph


def make_chunk(index, value, status=ChunkStatus.PENDING, result=None, error=None):
    return Chunk(index=index, nodes=(paragraph(value),), estimated_tokens=10,
                 status=status, result=result, error=error)


def test_merge_orders_by_index_and_falls_back_to_source():
    chunks = [
        make_chunk(2, "three", ChunkStatus.SUCCESS, doc(paragraph("drei"))),
        make_chunk(0, "one", ChunkStatus.SUCCESS, doc(paragraph("eins"))),
        make_chunk(1, "two", ChunkStatus.ERROR, error="boom"),
    ]
    result = ChunkMerger().merge(chunks)
    assert result.success
    assert result.was_chunked
    assert result.total_chunks == 3
    assert result.successful_chunks == 2
    assert result.failed_chunk_indices == (1,)
    assert result.merged_document == doc(paragraph("eins"), paragraph("two"), paragraph("drei"))


def test_merge_with_no_successes_fails():
    chunks = [make_chunk(0, "one", ChunkStatus.ERROR, error="first"), make_chunk(1, "two", ChunkStatus.ERROR)]
    result = ChunkMerger().merge(chunks)
    assert result.success is False
    assert result.merged_document is None
    assert result.failed_chunk_indices == (0, 1)
    assert result.error == "first"


def test_merge_rejects_malformed_result():
    chunks = [
        make_chunk(0, "one", ChunkStatus.SUCCESS, {"type": "doc", "content": [{"text": "no type"}]}),
        make_chunk(1, "two", ChunkStatus.SUCCESS, doc(paragraph("zwei"))),
    ]
    result = ChunkMerger().merge(chunks)
    assert result.success is False
    assert result.merged_document is None
    assert result.error.startswith("Merged document is invalid")


def test_merge_chunks_copies_nodes():
    chunk = make_chunk(0, "one", ChunkStatus.SUCCESS, doc(paragraph("eins")))
    merged = ChunkMerger().merge_chunks([chunk])
    merged["content"][0]["content"][0]["text"] = "changed"
    assert chunk.result == doc(paragraph("eins"))


def test_validate_document():
    validate_document(doc(paragraph("ok")))
    with pytest.raises(MergeValidationError):
        validate_document({"type": "doc", "content": "nope"})
