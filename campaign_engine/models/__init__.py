"""
campaign_engine/models/ -- Pydantic v2 models for the campaign suggestion engine.

Submodules:
    base        Entity, link, suggestion and analysis-result records.
    heuristics  Keyword/tag tables and per-type schemas used by the analyzers.
"""

from campaign_engine.models.base import (
    AnalysisConfig,
    AnalysisResult,
    AnalysisRunRecord,
    Entity,
    FullAnalysisResult,
    Link,
    StoredSuggestion,
    SuggestedAction,
    Suggestion,
    SuggestionQueryFilters,
    SuggestionStats,
)
from campaign_engine.models.heuristics import EntityTypeSchema, HeuristicTables

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "AnalysisRunRecord",
    "Entity",
    "EntityTypeSchema",
    "FullAnalysisResult",
    "HeuristicTables",
    "Link",
    "StoredSuggestion",
    "SuggestedAction",
    "Suggestion",
    "SuggestionQueryFilters",
    "SuggestionStats",
]
