"""
campaign_engine/suggestion_service.py -- Analysis orchestrator.

Runs the four analyzers over one shared context, isolates their failures,
merges and deduplicates their output, stamps and persists the survivors,
and decides when a new run is worth doing.

Pipeline of ``run_full_analysis``::

    entities -> build_context -> [inconsistency, enhancement,
    relationship, plot_thread] -> deduplicate -> min score / per-type cap
    -> stamp (id, status, expiry) -> SuggestionRepository.bulk_add

Usage:
    from campaign_engine.suggestion_service import SuggestionAnalysisService

    service = SuggestionAnalysisService(entity_repo, suggestion_repo, generate=client.generate)
    if service.should_run_analysis():
        result = await service.run_full_analysis({"enable_ai_analysis": False})
        print(result.total_suggestions, result.errors)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime

from campaign_engine.analyzers import default_analyzers
from campaign_engine.analyzers.base import SuggestionAnalyzer
from campaign_engine.context_builder import EntityAnalysisContext, build_context
from campaign_engine.models.base import (
    AnalysisConfig,
    AnalysisResult,
    AnalysisRunRecord,
    FullAnalysisResult,
    StoredSuggestion,
    Suggestion,
)
from campaign_engine.repositories import EntityNotFoundError, EntityRepository, SuggestionRepository
from campaign_engine.utils import normalize_title, now_utc

logger = logging.getLogger(__name__)

MIN_ENTITY_GROWTH = 5
MIN_ENTITY_GROWTH_RATIO = 0.25


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass
class AnalyzerOutcome:
    """Result of running one analyzer: either a result or an error message."""
    analyzer_type: str
    result: AnalysisResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def result_or_empty(self) -> AnalysisResult:
        if self.result is not None:
            return self.result
        return AnalysisResult(type=self.analyzer_type)


def suggestion_key(suggestion: Suggestion) -> tuple[tuple[str, ...], str]:
    """Identity of a finding: its sorted affected IDs plus its normalised title."""
    return tuple(sorted(suggestion.affected_entity_ids)), normalize_title(suggestion.title)


def deduplicate_suggestions(suggestions) -> list[Suggestion]:
    """Collapse findings with the same key, keeping the most relevant one.

    First-seen order of keys is preserved and ties keep the earlier finding,
    so applying the function twice gives the same list.
    """
    kept: dict[tuple, Suggestion] = {}
    for suggestion in suggestions:
        key = suggestion_key(suggestion)
        existing = kept.get(key)
        if existing is None or suggestion.relevance_score > existing.relevance_score:
            kept[key] = suggestion
    return list(kept.values())


def filter_and_cap(suggestions, config: AnalysisConfig) -> list[Suggestion]:
    """Drop findings below the minimum score and keep at most N per type."""
    per_type: dict[str, int] = {}
    kept = []
    for suggestion in suggestions:
        if suggestion.relevance_score < config.min_relevance_score:
            continue
        count = per_type.get(suggestion.type, 0)
        if count >= config.max_suggestions_per_type:
            continue
        per_type[suggestion.type] = count + 1
        kept.append(suggestion)
    return kept


def _failure_message(analyzer_type: str, exc: BaseException) -> str:
    return f"{analyzer_type} analyzer failed: {str(exc) or type(exc).__name__}"


# ---------------------------------------------------------------------------
# SuggestionAnalysisService
# ---------------------------------------------------------------------------

class SuggestionAnalysisService:
    """Coordinates analysis runs against the entity and suggestion stores.

    Parameters
    ----------
    entity_repository : EntityRepository
        Source of the entity snapshot.
    suggestion_repository : SuggestionRepository
        Destination of stamped suggestions and run bookkeeping.
    generate : coroutine function, optional
        Generation callable for the AI passes.  Without it the AI passes
        are skipped.
    analyzers : list, optional
        Analyzer line-up; defaults to the four standard analyzers.
    config : AnalysisConfig, optional
        Base configuration that per-run overrides are merged over.
    sleep, clock : optional
        Forwarded to the rate-limiting queue of the AI analyzers.
    """

    def __init__(
        self,
        entity_repository: EntityRepository,
        suggestion_repository: SuggestionRepository,
        generate=None,
        analyzers: list[SuggestionAnalyzer] | None = None,
        config: AnalysisConfig | None = None,
        *,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self._entities = entity_repository
        self._suggestions = suggestion_repository
        self._base_config = config or AnalysisConfig()
        if analyzers is None:
            analyzers = default_analyzers(generate, sleep=sleep, clock=clock)
        self._analyzers = list(analyzers)

    @property
    def analyzers(self) -> list[SuggestionAnalyzer]:
        return list(self._analyzers)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self, overrides: AnalysisConfig | dict | None = None, **kwargs) -> AnalysisConfig:
        """Merge *overrides* (and keyword overrides) over the base config.

        Pure: the base config is never modified.  Unknown keys raise a
        pydantic ``ValidationError``.
        """
        config = self._base_config.merged(overrides)
        if kwargs:
            config = config.merged(kwargs)
        return config

    # ------------------------------------------------------------------
    # Running analyzers
    # ------------------------------------------------------------------

    async def _run_analyzer(
        self,
        analyzer: SuggestionAnalyzer,
        context: EntityAnalysisContext,
        config: AnalysisConfig,
    ) -> AnalyzerOutcome:
        try:
            result = await analyzer.analyze(context, config)
        except Exception as exc:
            logger.exception("%s analyzer failed", analyzer.type)
            return AnalyzerOutcome(analyzer.type, error=_failure_message(analyzer.type, exc))
        return AnalyzerOutcome(analyzer.type, result=result)

    async def _run_all(self, context: EntityAnalysisContext, config: AnalysisConfig) -> list[AnalyzerOutcome]:
        outcomes = []
        for analyzer in self._analyzers:
            outcomes.append(await self._run_analyzer(analyzer, context, config))
        return outcomes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_full_analysis(self, overrides: AnalysisConfig | dict | None = None) -> FullAnalysisResult:
        """Analyze every entity and persist the resulting suggestions."""
        config = self.get_config(overrides)
        started = time.perf_counter()

        context = build_context(self._entities.get_all())
        outcomes = await self._run_all(context, config)

        results = [outcome.result_or_empty() for outcome in outcomes]
        errors = [outcome.error for outcome in outcomes if not outcome.ok]
        total_api_calls = sum(r.api_calls_made for r in results)

        merged = deduplicate_suggestions(s for r in results for s in r.suggestions)
        final = filter_and_cap(merged, config)

        now = now_utc()
        stored: list[StoredSuggestion] = [s.stamp(now, config.expiration_days) for s in final]
        if stored:
            self._suggestions.bulk_add(stored)
        self._suggestions.record_run(AnalysisRunRecord(
            ran_at=now,
            entity_count=len(context.entities),
            total_suggestions=len(stored),
        ))

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Full analysis: %d entities, %d suggestions stored, %d API calls, %d errors, %.1fms",
            len(context.entities), len(stored), total_api_calls, len(errors), elapsed_ms,
        )
        return FullAnalysisResult(
            results=results,
            total_suggestions=len(stored),
            total_api_calls=total_api_calls,
            total_time_ms=elapsed_ms,
            errors=errors,
        )

    async def analyze_entity(
        self, entity_id: str, overrides: AnalysisConfig | dict | None = None,
    ) -> FullAnalysisResult:
        """Analyze with the whole snapshot but report only *entity_id*'s findings.

        Nothing is persisted.  Results with suggestions come first.

        Raises
        ------
        EntityNotFoundError
            If *entity_id* is not in the entity store.
        """
        if self._entities.get_by_id(entity_id) is None:
            raise EntityNotFoundError(entity_id)

        config = self.get_config(overrides)
        started = time.perf_counter()

        context = build_context(self._entities.get_all())
        outcomes = await self._run_all(context, config)

        raw_results = [outcome.result_or_empty() for outcome in outcomes]
        errors = [outcome.error for outcome in outcomes if not outcome.ok]

        relevant = [
            s for r in raw_results for s in r.suggestions if entity_id in s.affected_entity_ids
        ]
        survivors = {id(s) for s in filter_and_cap(deduplicate_suggestions(relevant), config)}

        results = [
            r.model_copy(update={"suggestions": [s for s in r.suggestions if id(s) in survivors]})
            for r in raw_results
        ]
        results.sort(key=lambda r: len(r.suggestions) == 0)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Entity analysis for %s: %d suggestions, %d errors, %.1fms",
            entity_id, len(survivors), len(errors), elapsed_ms,
        )
        return FullAnalysisResult(
            results=results,
            total_suggestions=len(survivors),
            total_api_calls=sum(r.api_calls_made for r in raw_results),
            total_time_ms=elapsed_ms,
            errors=errors,
        )

    def should_run_analysis(self, now: datetime | None = None) -> bool:
        """Decide whether a new full analysis is worthwhile.

        True when nothing has ever been suggested, when no pending
        unexpired suggestion is left, or when the entity count has grown
        by at least max(5, 25%) since the last recorded run.
        """
        now = now or now_utc()
        stats = self._suggestions.get_stats(now)
        if stats.total == 0:
            return True
        if not self._suggestions.get_active(now):
            return True

        last_run = self._suggestions.get_last_run()
        if last_run is None:
            return False
        growth = self._entities.count() - last_run.entity_count
        threshold = max(MIN_ENTITY_GROWTH, last_run.entity_count * MIN_ENTITY_GROWTH_RATIO)
        return growth >= threshold
