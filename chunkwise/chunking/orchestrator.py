"""
Translation orchestration.

Runs the chunks of a document through a translate_chunk callable one at a
time, in index order. A failing chunk is recorded and the run moves on;
cancellation is polled before every chunk. Chunks are immutable and the
chunk tuple is replaced after every status transition.
"""

import copy
import dataclasses
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from chunkwise.ai.exceptions import ChunkTranslationError
from chunkwise.chunking.merger import ALL_CHUNKS_FAILED, ChunkMerger
from chunkwise.chunking.planner import ChunkPlanner
from chunkwise.chunking.types import (
    Chunk,
    ChunkConfig,
    ChunkProgress,
    ChunkStatus,
    ChunkTranslation,
    ContentTree,
    PipelineResult,
    TranslateChunkParams,
)
from chunkwise.document.nodes import empty_document, find_document_problem
from chunkwise.logger import get_logger

logger = get_logger(__name__)

TranslateChunkFn = Callable[[TranslateChunkParams], ChunkTranslation]
ProgressCallback = Callable[[ChunkProgress], None]
CancelCheck = Callable[[], bool]

CANCELLED_MESSAGE = "Translation was cancelled"


def _replace_chunk(chunks: Tuple[Chunk, ...], position: int, **changes) -> Tuple[Chunk, ...]:
    updated = dataclasses.replace(chunks[position], **changes)
    return chunks[:position] + (updated,) + chunks[position + 1:]


def _translated_content(translation: ChunkTranslation) -> ContentTree:
    content = getattr(translation, "translated_content", None)
    problem = find_document_problem(content)
    if problem:
        raise ChunkTranslationError(
            f"Translator returned an invalid document: {problem}",
            code="invalid_translation",
        )
    return content


class TranslationOrchestrator:
    """Plans a document into chunks and translates them sequentially."""

    def __init__(self, config: Optional[ChunkConfig] = None,
                 planner: Optional[ChunkPlanner] = None,
                 merger: Optional[ChunkMerger] = None):
        self.config = config or ChunkConfig()
        self.planner = planner or ChunkPlanner()
        self.merger = merger or ChunkMerger()

    def run(
        self,
        tree: ContentTree,
        translate_chunk: TranslateChunkFn,
        on_progress: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
        *,
        translation_rules: Optional[str] = None,
        project_context: Optional[str] = None,
        glossary: Optional[str] = None,
    ) -> PipelineResult:
        """Translate a whole document.

        Args:
            tree: Document to translate; it is not modified.
            translate_chunk: Translates one chunk; raises on failure.
            on_progress: Called after every chunk transition.
            cancel_check: Polled before each chunk; True stops the run.
            translation_rules: Passed through to translate_chunk.
            project_context: Passed through to translate_chunk.
            glossary: Passed through to translate_chunk.

        Returns:
            PipelineResult. Chunk failures are reported in it, never raised.
        """
        plan = self.planner.build_plan(tree, self.config)
        if not plan.chunks:
            logger.info("Document is empty, nothing to translate")
            return PipelineResult(
                success=True,
                merged_document=empty_document(),
                was_chunked=False,
                total_chunks=0,
                successful_chunks=0,
            )

        if plan.was_chunked:
            logger.info(f"Translating document in {len(plan.chunks)} chunks")
        else:
            logger.info("Translating document in a single request")

        return self._process(
            plan.chunks,
            [chunk.index for chunk in plan.chunks],
            translate_chunk,
            on_progress,
            cancel_check,
            translation_rules=translation_rules,
            project_context=project_context,
            glossary=glossary,
        )

    def retry_failed_chunks(
        self,
        previous_result: PipelineResult,
        original_chunks: Optional[Iterable[Chunk]],
        translate_chunk: TranslateChunkFn,
        on_progress: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
        *,
        translation_rules: Optional[str] = None,
        project_context: Optional[str] = None,
        glossary: Optional[str] = None,
    ) -> PipelineResult:
        """Translate again only the chunks a previous run failed on.

        Chunk state recorded in previous_result.chunks takes precedence over
        original_chunks, so successful chunks keep their translation.
        """
        if not previous_result.failed_chunk_indices:
            logger.info("No failed chunks to retry")
            return previous_result

        by_index: Dict[int, Chunk] = {chunk.index: chunk for chunk in original_chunks or ()}
        by_index.update({chunk.index: chunk for chunk in previous_result.chunks})
        chunks = tuple(by_index[index] for index in sorted(by_index))

        targets = []
        for index in sorted(set(previous_result.failed_chunk_indices)):
            chunk = by_index.get(index)
            if chunk is None:
                logger.warning(f"Failed chunk {index} is unknown, skipping it")
                continue
            if chunk.status is ChunkStatus.SUCCESS:
                continue
            targets.append(index)

        position_of = {chunk.index: position for position, chunk in enumerate(chunks)}
        for index in targets:
            # Explicit retry request: back to pending
            chunks = _replace_chunk(chunks, position_of[index], status=ChunkStatus.PENDING, result=None, error=None)

        logger.info(f"Retrying {len(targets)} failed chunks: {targets}")
        return self._process(
            chunks,
            targets,
            translate_chunk,
            on_progress,
            cancel_check,
            translation_rules=translation_rules,
            project_context=project_context,
            glossary=glossary,
        )

    def _process(
        self,
        chunks: Tuple[Chunk, ...],
        targets: List[int],
        translate_chunk: TranslateChunkFn,
        on_progress: Optional[ProgressCallback],
        cancel_check: Optional[CancelCheck],
        **context,
    ) -> PipelineResult:
        position_of = {chunk.index: position for position, chunk in enumerate(chunks)}
        total = len(targets)
        completed = 0
        cancelled = False

        for index in targets:
            if cancel_check and cancel_check():
                cancelled = True
                logger.info(f"Cancellation requested, stopping before chunk {index}")
                break

            position = position_of[index]
            previous_status = chunks[position].status
            chunks = _replace_chunk(chunks, position, status=ChunkStatus.TRANSLATING, error=None)
            if on_progress:
                on_progress(ChunkProgress(completed, total, index, ChunkStatus.TRANSLATING))

            params = TranslateChunkParams(
                source_content={"type": "doc", "content": copy.deepcopy(list(chunks[position].nodes))},
                chunk_index=index,
                total_chunks=len(chunks),
                **context,
            )

            logger.debug(f"Chunk {index + 1}/{len(chunks)}: starting translation")
            outcome_error = None
            translated = None
            try:
                translated = _translated_content(translate_chunk(params))
            except Exception as e:
                outcome_error = str(e) or type(e).__name__

            if cancel_check and cancel_check():
                # The run was cancelled while this chunk was in flight
                chunks = _replace_chunk(chunks, position, status=previous_status)
                cancelled = True
                logger.info(f"Cancellation requested, discarding the outcome of chunk {index}")
                break

            completed += 1
            if outcome_error is None:
                chunks = _replace_chunk(chunks, position, status=ChunkStatus.SUCCESS, result=translated, error=None)
                logger.info(f"Chunk {index + 1}/{len(chunks)} translated")
                status = ChunkStatus.SUCCESS
            else:
                chunks = _replace_chunk(chunks, position, status=ChunkStatus.ERROR, result=None, error=outcome_error)
                logger.error(f"Chunk {index + 1}/{len(chunks)} translation failed: {outcome_error}")
                status = ChunkStatus.ERROR
            if on_progress:
                on_progress(ChunkProgress(completed, total, index, status))

        result = self.merger.merge(chunks)
        if cancelled:
            error = result.error if result.error and result.error != ALL_CHUNKS_FAILED else CANCELLED_MESSAGE
            result = dataclasses.replace(result, cancelled=True, error=error)
        return result


def translate_in_chunks(
    tree: ContentTree,
    config: Optional[ChunkConfig],
    translate_chunk: TranslateChunkFn,
    on_progress: Optional[ProgressCallback] = None,
    cancel_check: Optional[CancelCheck] = None,
    **context,
) -> PipelineResult:
    """Plan, translate and merge a document with the given config."""
    return TranslationOrchestrator(config).run(tree, translate_chunk, on_progress, cancel_check, **context)


def retry_failed_chunks(
    previous_result: PipelineResult,
    original_chunks: Optional[Iterable[Chunk]],
    config: Optional[ChunkConfig],
    translate_chunk: TranslateChunkFn,
    on_progress: Optional[ProgressCallback] = None,
    cancel_check: Optional[CancelCheck] = None,
    **context,
) -> PipelineResult:
    """Retry the failed chunks of a previous run."""
    return TranslationOrchestrator(config).retry_failed_chunks(
        previous_result, original_chunks, translate_chunk, on_progress, cancel_check, **context
    )
