"""
campaign_engine -- Suggestion analysis engine for campaign entities.

Analyzes a graph of campaign entities (characters, NPCs, locations,
factions, ...) and produces actionable suggestions: inconsistencies,
enhancements, missing relationships and plot threads.
"""

__version__ = "0.1.0"
