"""
Chunk merging.

Concatenates chunk results back into one document in chunk order. A chunk
that did not translate contributes its original nodes, so a partially failed
run still yields a complete document.
"""

import copy
from typing import Iterable

from chunkwise.chunking.exceptions import MergeValidationError
from chunkwise.chunking.types import Chunk, ChunkStatus, ContentTree, PipelineResult
from chunkwise.document.nodes import find_document_problem, node_children
from chunkwise.logger import get_logger

logger = get_logger(__name__)

ALL_CHUNKS_FAILED = "All chunks failed to translate"


def validate_document(tree: ContentTree) -> None:
    """Raise MergeValidationError if the tree is not a well-formed document."""
    problem = find_document_problem(tree)
    if problem:
        raise MergeValidationError(problem)


class ChunkMerger:
    def merge_chunks(self, chunks: Iterable[Chunk]) -> ContentTree:
        """Concatenate chunk contents in index order, falling back to original nodes."""
        content = []
        for chunk in sorted(chunks, key=lambda c: c.index):
            if chunk.status is ChunkStatus.SUCCESS and chunk.result is not None:
                content.extend(copy.deepcopy(node_children(chunk.result)))
            else:
                content.extend(copy.deepcopy(list(chunk.nodes)))
        return {"type": "doc", "content": content}

    def merge(self, chunks: Iterable[Chunk]) -> PipelineResult:
        ordered = tuple(sorted(chunks, key=lambda c: c.index))
        total = len(ordered)
        succeeded = [c for c in ordered if c.status is ChunkStatus.SUCCESS]
        failed_indices = tuple(c.index for c in ordered if c.status is not ChunkStatus.SUCCESS)
        was_chunked = total > 1

        if total and not succeeded:
            first_error = next((c.error for c in ordered if c.error), None)
            logger.error(f"All {total} chunks failed: {first_error or ALL_CHUNKS_FAILED}")
            return PipelineResult(
                success=False,
                merged_document=None,
                was_chunked=was_chunked,
                total_chunks=total,
                successful_chunks=0,
                failed_chunk_indices=failed_indices,
                error=first_error or ALL_CHUNKS_FAILED,
                chunks=ordered,
            )

        merged = self.merge_chunks(ordered)
        try:
            validate_document(merged)
        except MergeValidationError as e:
            logger.error(f"Merged document failed validation: {e}")
            return PipelineResult(
                success=False,
                merged_document=None,
                was_chunked=was_chunked,
                total_chunks=total,
                successful_chunks=len(succeeded),
                failed_chunk_indices=failed_indices,
                error=f"Merged document is invalid: {e}",
                chunks=ordered,
            )

        if failed_indices:
            logger.warning(
                f"Merged {len(succeeded)}/{total} chunks; untranslated chunks kept as source: {failed_indices}"
            )
        else:
            logger.info(f"Merged {total} chunks")

        return PipelineResult(
            success=True,
            merged_document=merged,
            was_chunked=was_chunked,
            total_chunks=total,
            successful_chunks=len(succeeded),
            failed_chunk_indices=failed_indices,
            chunks=ordered,
        )
