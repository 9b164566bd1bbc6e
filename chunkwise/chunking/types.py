"""
Chunking Data Types

Dataclasses shared by the planner, orchestrator and merger.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from chunkwise.chunking.exceptions import PipelineCancelledError
from chunkwise.document.projection import BoundaryType

ContentTree = Dict[str, Any]


@dataclass(frozen=True)
class ChunkConfig:
    min_chunk_tokens: int = 1000
    max_chunk_tokens: int = 16384
    target_chunk_tokens: int = 8192
    overhead_per_chunk: int = 500       # Prompt tokens added to every request
    expansion_factor: float = 1.3       # Output growth of the translated text

    def __post_init__(self):
        if self.min_chunk_tokens <= 0:
            raise ValueError(f"min_chunk_tokens must be positive, got {self.min_chunk_tokens}")
        if not self.min_chunk_tokens <= self.target_chunk_tokens <= self.max_chunk_tokens:
            raise ValueError(
                "chunk token limits must satisfy min <= target <= max, got "
                f"{self.min_chunk_tokens} / {self.target_chunk_tokens} / {self.max_chunk_tokens}"
            )
        if self.overhead_per_chunk < 0:
            raise ValueError(f"overhead_per_chunk must not be negative, got {self.overhead_per_chunk}")
        if self.expansion_factor <= 0:
            raise ValueError(f"expansion_factor must be positive, got {self.expansion_factor}")

    _ALIASES = {
        "minChunkTokens": "min_chunk_tokens",
        "maxChunkTokens": "max_chunk_tokens",
        "targetChunkTokens": "target_chunk_tokens",
        "overheadPerChunk": "overhead_per_chunk",
        "expansionFactor": "expansion_factor",
    }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ChunkConfig":
        """Build a config from a partial mapping with snake_case or camelCase keys.

        Raises:
            ValueError: a value has the wrong type or breaks the limits.
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            name = cls._ALIASES.get(key, key)
            if name not in known:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number, got {value!r}")
            values[name] = value if name == "expansion_factor" else int(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class ChunkStatus(str, Enum):
    PENDING = "pending"
    TRANSLATING = "translating"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Chunk:
    index: int
    nodes: Tuple[Dict[str, Any], ...]
    estimated_tokens: int
    status: ChunkStatus = ChunkStatus.PENDING
    result: Optional[ContentTree] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "node_count": len(self.nodes),
            "estimated_tokens": self.estimated_tokens,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class ChunkingInfo:
    total_tokens: int
    complexity: int
    adjusted_threshold: int
    should_chunk: bool
    estimated_chunks: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tokens": self.total_tokens,
            "complexity": self.complexity,
            "adjusted_threshold": self.adjusted_threshold,
            "should_chunk": self.should_chunk,
            "estimated_chunks": self.estimated_chunks,
        }


@dataclass(frozen=True)
class ChunkPlan:
    chunks: Tuple[Chunk, ...]
    was_chunked: bool
    info: ChunkingInfo


@dataclass(frozen=True)
class ChunkProgress:
    """Progress of a run, reported after every chunk transition."""
    completed: int
    total: int
    current_chunk_index: int
    status: ChunkStatus


@dataclass(frozen=True)
class TranslateChunkParams:
    source_content: ContentTree
    chunk_index: int
    total_chunks: int
    translation_rules: Optional[str] = None
    project_context: Optional[str] = None
    glossary: Optional[str] = None


@dataclass(frozen=True)
class ChunkTranslation:
    translated_content: ContentTree
    raw_response_text: str = ""


@dataclass(frozen=True)
class PipelineResult:
    success: bool
    merged_document: Optional[ContentTree]
    was_chunked: bool
    total_chunks: int
    successful_chunks: int
    failed_chunk_indices: Tuple[int, ...] = ()
    error: Optional[str] = None
    cancelled: bool = False
    chunks: Tuple[Chunk, ...] = ()

    def raise_if_cancelled(self) -> "PipelineResult":
        """Raise PipelineCancelledError if the run was stopped, else return self."""
        if self.cancelled:
            raise PipelineCancelledError(result=self)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "merged_document": self.merged_document,
            "was_chunked": self.was_chunked,
            "total_chunks": self.total_chunks,
            "successful_chunks": self.successful_chunks,
            "failed_chunk_indices": list(self.failed_chunk_indices),
            "error": self.error,
            "cancelled": self.cancelled,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }


__all__ = [
    "BoundaryType",
    "Chunk",
    "ChunkConfig",
    "ChunkPlan",
    "ChunkProgress",
    "ChunkStatus",
    "ChunkTranslation",
    "ChunkingInfo",
    "ContentTree",
    "PipelineResult",
    "TranslateChunkParams",
]
