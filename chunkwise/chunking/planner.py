"""
Chunk planning.

ChunkPlanner decides whether a document needs chunking at all and, if so,
cuts it into chunks at top-level node boundaries. The interior of a list,
blockquote or code block is never cut. Among the legal cut points inside
the token window a heading or rule boundary beats a paragraph boundary,
which beats a list item boundary.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from chunkwise.chunking.types import (
    BoundaryType,
    Chunk,
    ChunkConfig,
    ChunkingInfo,
    ChunkPlan,
)
from chunkwise.config import (
    CHUNKING_THRESHOLD,
    LIST_ITEM_PENALTY,
    MAX_COMPLEXITY_PENALTY,
    NESTING_DEPTH_PENALTY,
)
from chunkwise.document.exceptions import ConversionError
from chunkwise.document.linearizer import DocumentLinearizer, boundary_for
from chunkwise.document.nodes import (
    NESTING_KINDS,
    NO_SPLIT_KINDS,
    NodeKind,
    classify,
    node_children,
)
from chunkwise.document.tokens import TokenEstimator
from chunkwise.logger import get_logger

logger = get_logger(__name__)


def calculate_complexity(tree: Dict[str, Any]) -> int:
    """Complexity penalty: list items and nesting depth make translation output less predictable."""
    list_items = 0
    max_depth = 0
    stack = [(node, 0) for node in node_children(tree)]
    while stack:
        node, depth = stack.pop()
        if not isinstance(node, dict):
            continue
        max_depth = max(max_depth, depth)
        kind = classify(node)
        if kind is NodeKind.LIST_ITEM:
            list_items += 1
        child_depth = depth + 1 if kind in NESTING_KINDS else depth
        stack.extend((child, child_depth) for child in node_children(node))

    penalty = list_items * LIST_ITEM_PENALTY + max_depth * NESTING_DEPTH_PENALTY
    return min(penalty, MAX_COMPLEXITY_PENALTY)


class ChunkPlanner:
    def __init__(self, linearizer: Optional[DocumentLinearizer] = None,
                 estimator: Optional[TokenEstimator] = None):
        self.linearizer = linearizer or DocumentLinearizer()
        self.estimator = estimator or TokenEstimator()

    def calculate_complexity(self, tree: Dict[str, Any]) -> int:
        return calculate_complexity(tree)

    def adjusted_threshold(self, tree: Dict[str, Any], config: ChunkConfig) -> int:
        return max(CHUNKING_THRESHOLD - calculate_complexity(tree), config.min_chunk_tokens)

    def should_chunk(self, tree: Dict[str, Any], config: ChunkConfig) -> bool:
        try:
            text = self.linearizer.to_markdown(tree)
        except ConversionError as e:
            logger.warning(f"Could not linearize document for the chunking check: {e}")
            return False
        return self.estimator.estimate(text) >= self.adjusted_threshold(tree, config)

    def get_chunking_info(self, tree: Dict[str, Any], config: ChunkConfig) -> ChunkingInfo:
        return self.build_plan(tree, config).info

    def plan(self, tree: Dict[str, Any], config: ChunkConfig) -> List[Chunk]:
        """Return the ordered chunks for a document (empty for an empty document)."""
        return list(self.build_plan(tree, config).chunks)

    def build_plan(self, tree: Dict[str, Any], config: ChunkConfig) -> ChunkPlan:
        nodes = node_children(tree) if isinstance(tree, dict) else []
        complexity = calculate_complexity(tree) if isinstance(tree, dict) else 0
        threshold = max(CHUNKING_THRESHOLD - complexity, config.min_chunk_tokens)

        try:
            projection = self.linearizer.linearize(tree)
        except ConversionError as e:
            logger.warning(f"Document could not be linearized, translating it as a single chunk: {e}")
            return self._single_chunk_plan(nodes, 0, complexity, threshold, config)

        if not nodes:
            info = ChunkingInfo(0, complexity, threshold, False, 0)
            return ChunkPlan(chunks=(), was_chunked=False, info=info)

        total_tokens = self.estimator.estimate(projection.text)
        if total_tokens < threshold:
            logger.info(f"Document has {total_tokens} tokens (threshold {threshold}), no chunking needed")
            return self._single_chunk_plan(nodes, total_tokens, complexity, threshold, config)

        node_tokens = [
            self.estimator.estimate("\n".join(s.text for s in projection.for_node(i)))
            for i in range(len(nodes))
        ]
        ranges = self._split_ranges(nodes, node_tokens, config)
        chunks = tuple(
            Chunk(
                index=chunk_index,
                nodes=tuple(nodes[start:end]),
                estimated_tokens=self._budget(sum(node_tokens[start:end]), config),
            )
            for chunk_index, (start, end) in enumerate(ranges)
        )

        problem = self._find_conversion_problem(chunks)
        if problem:
            logger.warning(f"Chunk conversion check failed, translating as a single chunk: {problem}")
            return self._single_chunk_plan(nodes, total_tokens, complexity, threshold, config)

        info = ChunkingInfo(total_tokens, complexity, threshold, True, len(chunks))
        logger.info(
            f"Planned {len(chunks)} chunks for {total_tokens} tokens "
            f"(threshold {threshold}, complexity {complexity})"
        )
        for chunk in chunks:
            logger.debug(f"  Chunk {chunk.index}: {len(chunk.nodes)} nodes, ~{chunk.estimated_tokens} tokens")
        return ChunkPlan(chunks=chunks, was_chunked=len(chunks) > 1, info=info)

    def _single_chunk_plan(self, nodes: List[Dict[str, Any]], total_tokens: int, complexity: int,
                           threshold: int, config: ChunkConfig) -> ChunkPlan:
        info = ChunkingInfo(total_tokens, complexity, threshold, False, 1 if nodes else 0)
        if not nodes:
            return ChunkPlan(chunks=(), was_chunked=False, info=info)
        chunk = Chunk(index=0, nodes=tuple(nodes), estimated_tokens=self._budget(total_tokens, config))
        return ChunkPlan(chunks=(chunk,), was_chunked=False, info=info)

    def _budget(self, raw_tokens: int, config: ChunkConfig) -> int:
        """Tokens a chunk costs once prompt overhead and output growth are counted."""
        return math.ceil((raw_tokens + config.overhead_per_chunk) * config.expansion_factor)

    def _split_priority(self, nodes: List[Dict[str, Any]], index: int) -> int:
        """Priority of cutting right before nodes[index] (index >= 1)."""
        priority = boundary_for(nodes[index]).priority
        previous = classify(nodes[index - 1])
        if previous is NodeKind.HORIZONTAL_RULE:
            priority = min(priority, BoundaryType.HORIZONTAL_RULE.priority)
        elif previous in NO_SPLIT_KINDS:
            # Closing edge of a list, blockquote or code block
            priority = min(priority, boundary_for(nodes[index - 1]).priority)
        return priority

    def _split_ranges(self, nodes: List[Dict[str, Any]], node_tokens: List[int],
                      config: ChunkConfig) -> List[Tuple[int, int]]:
        """Cut [0, len(nodes)) into consecutive (start, end) ranges.

        From each start, candidate cuts are collected while the chunk budget
        stays within max. The lowest priority candidate inside
        [target, max] wins, ties going to the later cut. Without one, the
        rest of the document becomes the last chunk if it fits; otherwise
        the best candidate below target is taken. A single node over max
        becomes a chunk of its own.
        """
        ranges = []
        start = 0
        count = len(nodes)
        while start < count:
            candidates = []
            raw = node_tokens[start]
            for end in range(start + 1, count):
                budget = self._budget(raw, config)
                if budget > config.max_chunk_tokens:
                    break
                candidates.append((end, budget, self._split_priority(nodes, end)))
                raw += node_tokens[end]

            in_window = [c for c in candidates if c[1] >= config.target_chunk_tokens]
            rest_budget = self._budget(sum(node_tokens[start:]), config)

            if in_window:
                end = self._best_candidate(in_window)
            elif rest_budget <= config.max_chunk_tokens:
                end = count
            elif candidates:
                end = self._best_candidate(candidates)
            else:
                logger.warning(
                    f"Node {start} alone needs ~{self._budget(node_tokens[start], config)} tokens, "
                    f"over the {config.max_chunk_tokens} limit"
                )
                end = start + 1

            ranges.append((start, end))
            start = end
        return ranges

    @staticmethod
    def _best_candidate(candidates: List[Tuple[int, int, int]]) -> int:
        # Lowest priority first, then the later cut
        end, _, _ = min(candidates, key=lambda c: (c[2], -c[0]))
        return end

    def _find_conversion_problem(self, chunks: Tuple[Chunk, ...]) -> Optional[str]:
        for chunk in chunks:
            try:
                text = self.linearizer.linearize_nodes(list(chunk.nodes)).text
                self.linearizer.delinearize(text)
            except ConversionError as e:
                return f"chunk {chunk.index}: {e}"
        return None
