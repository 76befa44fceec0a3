"""
campaign_engine/analyzers/base.py -- Shared analyzer plumbing.

Every analyzer exposes ``type`` and ``async analyze(context, config)``.
Subclasses implement ``_collect`` and return their raw findings plus the
number of generation calls made; the base class times the run and applies
the per-analyzer limit (minimum relevance, best first, capped at
``max_suggestions_per_type``).
"""

from __future__ import annotations

import asyncio
import logging
import time

from campaign_engine.context_builder import EntityAnalysisContext
from campaign_engine.models.base import AnalysisConfig, AnalysisResult, Suggestion
from campaign_engine.task_queue import SerialTaskQueue

logger = logging.getLogger(__name__)


def limit_suggestions(suggestions: list[Suggestion], config: AnalysisConfig) -> list[Suggestion]:
    """Drop low-relevance findings, sort best first and cap the list.

    The sort is stable, so equal scores keep discovery order.
    """
    kept = [s for s in suggestions if s.relevance_score >= config.min_relevance_score]
    kept.sort(key=lambda s: s.relevance_score, reverse=True)
    return kept[:config.max_suggestions_per_type]


class SuggestionAnalyzer:
    """Base class for the four analyzers."""

    type: str = ""

    async def analyze(self, context: EntityAnalysisContext, config: AnalysisConfig) -> AnalysisResult:
        started = time.perf_counter()
        suggestions, api_calls = await self._collect(context, config)
        limited = limit_suggestions(suggestions, config)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "%s analyzer: %d findings, %d kept, %d API calls, %.1fms",
            self.type, len(suggestions), len(limited), api_calls, elapsed_ms,
        )
        return AnalysisResult(
            type=self.type,
            suggestions=limited,
            analysis_time_ms=elapsed_ms,
            api_calls_made=api_calls,
        )

    async def _collect(
        self, context: EntityAnalysisContext, config: AnalysisConfig
    ) -> tuple[list[Suggestion], int]:
        raise NotImplementedError


class GeneratingAnalyzer(SuggestionAnalyzer):
    """Analyzer that talks to the generation backend.

    Parameters
    ----------
    generate : coroutine function, optional
        ``generate(prompt, temperature=...) -> GenerationResult``.  When
        omitted, the AI passes are skipped as if AI analysis were disabled.
    sleep, clock : optional
        Passed to the :class:`SerialTaskQueue` that paces the calls.
    """

    def __init__(self, generate=None, *, sleep=asyncio.sleep, clock=time.monotonic):
        self._generate = generate
        self._sleep = sleep
        self._clock = clock

    def _ai_enabled(self, config: AnalysisConfig) -> bool:
        return config.enable_ai_analysis and self._generate is not None

    def _make_queue(self, config: AnalysisConfig) -> SerialTaskQueue:
        return SerialTaskQueue(config.rate_limit_ms, sleep=self._sleep, clock=self._clock)
