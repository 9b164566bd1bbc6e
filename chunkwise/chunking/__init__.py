"""
Chunking module - chunked document translation

This module provides:
- ChunkConfig, Chunk, PipelineResult and the other chunk data types
- ChunkPlanner: splits a document at structural boundaries
- TranslationOrchestrator: sequential, cancellable chunk translation
- ChunkMerger: reassembles chunk results into one document
"""

from chunkwise.chunking.types import (
    BoundaryType,
    Chunk,
    ChunkConfig,
    ChunkingInfo,
    ChunkPlan,
    ChunkProgress,
    ChunkStatus,
    ChunkTranslation,
    PipelineResult,
    TranslateChunkParams,
)
from chunkwise.chunking.exceptions import MergeValidationError, PipelineCancelledError
from chunkwise.chunking.planner import ChunkPlanner, calculate_complexity
from chunkwise.chunking.merger import ChunkMerger, validate_document
from chunkwise.chunking.orchestrator import (
    TranslationOrchestrator,
    retry_failed_chunks,
    translate_in_chunks,
)
