"""
campaign_engine/analyzers/ -- The four suggestion analyzers.

Each analyzer takes the shared ``EntityAnalysisContext`` and an
``AnalysisConfig`` and returns an ``AnalysisResult``:

    inconsistency   data conflicts (rule based)
    enhancement     sparse or incomplete entities (rule based)
    relationship    missing links (rules, optionally AI)
    plot_thread     narrative threads across groups (AI only)
"""

from campaign_engine.analyzers.base import GeneratingAnalyzer, SuggestionAnalyzer, limit_suggestions
from campaign_engine.analyzers.enhancement import EnhancementAnalyzer
from campaign_engine.analyzers.inconsistency import InconsistencyAnalyzer
from campaign_engine.analyzers.plot_thread import PlotThreadAnalyzer
from campaign_engine.analyzers.relationship import RelationshipAnalyzer


def default_analyzers(generate=None, **queue_options) -> list[SuggestionAnalyzer]:
    """The standard analyzer line-up, in run order."""
    return [
        InconsistencyAnalyzer(),
        EnhancementAnalyzer(),
        RelationshipAnalyzer(generate, **queue_options),
        PlotThreadAnalyzer(generate, **queue_options),
    ]


__all__ = [
    "EnhancementAnalyzer",
    "GeneratingAnalyzer",
    "InconsistencyAnalyzer",
    "PlotThreadAnalyzer",
    "RelationshipAnalyzer",
    "SuggestionAnalyzer",
    "default_analyzers",
    "limit_suggestions",
]
