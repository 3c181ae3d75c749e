"""Budget-aware context compression."""

import asyncio
import copy
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from graph.analyzer import GraphAnalyzer
from graph.context_graph import ContextGraph

from . import strategies
from .types import (
    CompressionConfig,
    CompressionResult,
    CompressionStrategy,
    ContextRecord,
    parse_level,
)

logger = logging.getLogger(__name__)

DEFAULT_TARGET_TOKENS = 20000
DEFAULT_TOKEN_LIMIT = 25000
DEFAULT_BATCH_TARGET_TOKENS = 5000


class ContextSummarizer:
    """Compresses context records to fit size and token budgets.

    Strategies are pure: the input record is never modified, and every
    result's payload serializes no larger than the input's.
    """

    def __init__(
        self,
        config: Optional[CompressionConfig] = None,
        context_graph: Optional[ContextGraph] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize summarizer.

        Args:
            config: Compression settings (default: from Config)
            context_graph: Graph used by graph-aware compression
            clock: Returns the current time; used for the age gate
        """
        self.config = config or CompressionConfig.from_config()
        self.clock = clock or datetime.now
        self.context_graph: Optional[ContextGraph] = None
        self.analyzer: Optional[GraphAnalyzer] = None
        self._stats_lock = threading.Lock()
        self._stats: Dict[str, Any] = {
            "compressions": 0,
            "skipped": 0,
            "fallbacks": 0,
            "bytes_saved": 0,
            "by_strategy": {},
        }
        if context_graph is not None:
            self.set_context_graph(context_graph)

    def set_context_graph(self, graph: Optional[ContextGraph]) -> None:
        """Attach (or detach, with None) the graph used for analysis."""
        self.context_graph = graph
        self.analyzer = (
            GraphAnalyzer(graph, self.config.relationship_importance) if graph is not None else None
        )

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    def compress(
        self,
        record: ContextRecord,
        strategy: str = CompressionStrategy.SUMMARIZE,
        target_tokens: Optional[int] = None,
    ) -> CompressionResult:
        """Compress a record using the specified strategy.

        Args:
            record: Record to compress
            strategy: One of CompressionStrategy
            target_tokens: Token budget for SMART and GRAPH_AWARE

        Returns:
            CompressionResult
        """
        target = target_tokens if target_tokens is not None else DEFAULT_TARGET_TOKENS

        if strategy == CompressionStrategy.SUMMARIZE:
            return self.summarize(record)
        elif strategy == CompressionStrategy.TRUNCATE:
            return self.truncate(record)
        elif strategy == CompressionStrategy.SMART:
            return self.smart_summarize(record, target)
        elif strategy == CompressionStrategy.GRAPH_AWARE:
            return self.graph_aware_summarize(record, target)
        elif strategy == CompressionStrategy.EMERGENCY:
            return self.emergency_summarize(record)
        else:
            logger.warning(f"Unknown strategy {strategy}, using summarize")
            return self.summarize(record)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def summarize(
        self, record: ContextRecord, compression_level: Optional[str] = None
    ) -> CompressionResult:
        """Age-gated, ratio-based summary shaped by the record's level.

        Records younger than the policy's age threshold come back unchanged.

        Args:
            record: Record to summarize
            compression_level: "low", "medium" or "high" (default: configured level)

        Raises:
            ValidationError: If the payload does not match its level's shape
            ValueError: If the compression level is unknown
        """
        policy = self.config.policy
        created_at = record.created_at
        now = self.clock()
        # Naive times are local time
        if created_at.tzinfo is not None and now.tzinfo is None:
            now = now.astimezone()
        elif created_at.tzinfo is None and now.tzinfo is not None:
            created_at = created_at.astimezone()

        age = now - created_at
        if age < policy.age_threshold:
            logger.debug(f"Context {record.id} is {age} old, below age threshold; not summarized")
            return self._unchanged(record, CompressionStrategy.SUMMARIZE, "too_recent")

        level = policy.level(compression_level or self.config.level)
        context_level = parse_level(record.level)
        if context_level is None:
            logger.debug(f"Unknown context level {record.level!r} for {record.id}, using generic summary")

        data = strategies.summarize_data(
            context_level, record.data, level.preserve_ratio, self.config.preserve_keys
        )
        return self._finish(
            record,
            data,
            CompressionStrategy.SUMMARIZE,
            record_metadata={
                "summarized": True,
                "summarized_at": now.isoformat(),
                "compression_level": level.name,
                "preserve_ratio": level.preserve_ratio,
            },
        )

    def truncate(self, record: ContextRecord, max_length: Optional[int] = None) -> CompressionResult:
        """Shorten every long string in the payload; nothing else changes."""
        limit = max_length if max_length is not None else self.config.max_summary_length
        data = strategies.truncate_text(record.data, limit)
        return self._finish(record, data, CompressionStrategy.TRUNCATE)

    def smart_summarize(
        self, record: ContextRecord, target_tokens: int = DEFAULT_TARGET_TOKENS
    ) -> CompressionResult:
        """Reduce the payload toward a token budget by field importance."""
        current_tokens = strategies.estimate_tokens(record.data)
        if current_tokens <= target_tokens:
            return self._unchanged(record, CompressionStrategy.SMART, "under_budget")

        ratio = min(target_tokens / current_tokens, 1.0)
        data = strategies.smart_compress(
            record.data,
            ratio,
            self.config.importance_weights,
            self.config.preserve_keys,
            self.config.max_summary_length,
        )
        return self._finish(
            record,
            data,
            CompressionStrategy.SMART,
            metadata={"target_tokens": target_tokens, "retention_ratio": ratio},
            record_metadata={"smart_summarized": True, "target_tokens": target_tokens},
        )

    def graph_aware_summarize(
        self, record: ContextRecord, target_tokens: int = DEFAULT_TARGET_TOKENS
    ) -> CompressionResult:
        """Smart compression with weights boosted by the record's graph position.

        Falls back to smart compression when graph analysis is disabled, no
        graph is attached, or the analysis fails.
        """
        if not self.config.use_graph_analysis or self.analyzer is None:
            return self.smart_summarize(record, target_tokens)

        current_tokens = strategies.estimate_tokens(record.data)
        if current_tokens <= target_tokens and not self.config.force_graph_analysis:
            return self._unchanged(record, CompressionStrategy.GRAPH_AWARE, "under_budget")

        try:
            analysis = self.analyzer.analyze(record.id)
            ratio = min(target_tokens / current_tokens, 1.0) if current_tokens else 1.0
            data = strategies.graph_aware_compress(
                record.data,
                ratio,
                analysis,
                preserve_keys=self.config.preserve_keys,
                max_text_length=self.config.max_summary_length,
            )
        except Exception as e:
            logger.warning(
                f"Graph-aware compression failed for {record.id}: {e}; falling back to smart"
            )
            self._record("fallbacks")
            result = self.smart_summarize(record, target_tokens)
            result.metadata["fallback_reason"] = str(e)
            return result

        return self._finish(
            record,
            data,
            CompressionStrategy.GRAPH_AWARE,
            metadata={
                "target_tokens": target_tokens,
                "retention_ratio": ratio,
                "graph_analysis": analysis.summary(),
            },
            record_metadata={
                "graph_aware_summarized": True,
                "target_tokens": target_tokens,
                "graph_analysis": analysis.summary(),
            },
        )

    def emergency_summarize(self, record: ContextRecord) -> CompressionResult:
        """Reduce the payload to a fixed minimal field set, ignoring ratios."""
        data = strategies.emergency_data(parse_level(record.level), record.data)
        logger.info(f"Emergency compression applied to {record.id}")
        return self._finish(
            record,
            data,
            CompressionStrategy.EMERGENCY,
            record_metadata={"emergency_compressed": True},
        )

    async def batch_graph_aware_summarize(
        self,
        records: List[ContextRecord],
        target_tokens_per_context: int = DEFAULT_BATCH_TARGET_TOKENS,
        parallel: bool = True,
        chunk_size: Optional[int] = None,
    ) -> List[CompressionResult]:
        """Graph-aware compression of many records.

        Records are processed in chunks; within a chunk they run
        concurrently in worker threads. Results keep input order.

        Args:
            records: Records to compress
            target_tokens_per_context: Token budget for each record
            parallel: Run chunks concurrently (sequential if False)
            chunk_size: Records per chunk (default: configured batch chunk size)

        Returns:
            One CompressionResult per input record, in input order
        """
        size = chunk_size or self.config.batch_chunk_size
        if not parallel or len(records) <= size:
            return [self.graph_aware_summarize(r, target_tokens_per_context) for r in records]

        results: List[CompressionResult] = []
        for start in range(0, len(records), size):
            chunk = records[start : start + size]
            chunk_results = await asyncio.gather(
                *(
                    asyncio.to_thread(self.graph_aware_summarize, record, target_tokens_per_context)
                    for record in chunk
                )
            )
            results.extend(chunk_results)

        logger.info(f"Batch compressed {len(records)} contexts in chunks of {size}")
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def extract_key_points(self, text: str, max_length: Optional[int] = None) -> str:
        limit = max_length if max_length is not None else self.config.max_summary_length
        return strategies.extract_key_points(text, limit)

    @staticmethod
    def estimate_tokens(payload: Any) -> int:
        """Estimate tokens for a payload or a ContextRecord's payload."""
        if isinstance(payload, ContextRecord):
            payload = payload.data
        return strategies.estimate_tokens(payload)

    def needs_token_summarization(self, payload: Any, token_limit: int = DEFAULT_TOKEN_LIMIT) -> bool:
        """True once a payload uses more than 80% of the token limit."""
        return self.estimate_tokens(payload) > token_limit * 0.8

    @staticmethod
    def calculate_compression_level(current_size: float, max_size: float) -> str:
        """Pick a compression level from size pressure (current / max)."""
        if max_size <= 0:
            return "high"
        pressure = current_size / max_size
        if pressure < 0.5:
            return "low"
        if pressure < 0.8:
            return "medium"
        return "high"

    def get_stats(self) -> Dict[str, Any]:
        """Counters of compressions performed by this summarizer."""
        with self._stats_lock:
            stats = copy.deepcopy(self._stats)
        stats["level"] = self.config.level
        stats["graph_attached"] = self.context_graph is not None
        return stats

    def _record(self, counter: str, strategy: Optional[str] = None, saved: int = 0) -> None:
        with self._stats_lock:
            self._stats[counter] += 1
            self._stats["bytes_saved"] += saved
            if strategy is not None:
                by_strategy = self._stats["by_strategy"]
                by_strategy[strategy] = by_strategy.get(strategy, 0) + 1

    def _unchanged(self, record: ContextRecord, strategy: str, reason: str) -> CompressionResult:
        size = strategies.payload_size(record.data)
        tokens = strategies.estimate_tokens(record.data)
        self._record("skipped")
        return CompressionResult(
            record=copy.deepcopy(record),
            strategy=strategy,
            original_size=size,
            compressed_size=size,
            original_tokens=tokens,
            final_tokens=tokens,
            compressed=False,
            metadata={"skipped": reason},
        )

    def _finish(
        self,
        record: ContextRecord,
        data: Any,
        strategy: str,
        metadata: Optional[Dict[str, Any]] = None,
        record_metadata: Optional[Dict[str, Any]] = None,
    ) -> CompressionResult:
        """Apply the growth guard and package the result."""
        data = strategies.enforce_no_growth(record.data, data)
        original_size = strategies.payload_size(record.data)
        compressed_size = strategies.payload_size(data)

        new_record = ContextRecord(
            id=record.id,
            level=record.level,
            data=data,
            metadata={**copy.deepcopy(record.metadata), **(record_metadata or {})},
            parent_id=record.parent_id,
        )
        result = CompressionResult(
            record=new_record,
            strategy=strategy,
            original_size=original_size,
            compressed_size=compressed_size,
            original_tokens=strategies.estimate_tokens(record.data),
            final_tokens=strategies.estimate_tokens(data),
            metadata=metadata or {},
        )
        self._record("compressions", strategy, result.bytes_saved)

        logger.debug(
            f"Compressed {record.id} with {strategy}: {original_size} -> {compressed_size} bytes "
            f"(ratio {result.compression_ratio:.2f})"
        )
        return result
