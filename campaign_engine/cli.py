"""
campaign_engine/cli.py -- Command line entry point.

Usage::

    python -m campaign_engine analyze --entities campaign.json [--store suggestions.json]
                                      [--no-ai] [--entity ID]
                                      [--max-per-type N] [--min-score N]
    python -m campaign_engine should-run --entities campaign.json [--store suggestions.json]
    python -m campaign_engine stats [--store suggestions.json]
    python -m campaign_engine apply SUGGESTION_ID --entities campaign.json [--store ...] [--history ...]
    python -m campaign_engine undo ENTRY_ID --entities campaign.json [--store ...] [--history ...]

Every command prints a JSON report on stdout.  AI passes run only when an
Anthropic API key is configured and ``--no-ai`` is not given.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from campaign_engine import __version__
from campaign_engine.action_service import SuggestionActionService
from campaign_engine.generation_client import GenerationClient
from campaign_engine.paths import get_default_action_history, get_default_suggestion_store
from campaign_engine.repositories import EntityNotFoundError, JsonEntityRepository, JsonSuggestionRepository
from campaign_engine.suggestion_service import SuggestionAnalysisService

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="campaign_engine",
        description="Analyze campaign entities and suggest improvements",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    store_help = "Suggestion store JSON file (default: user data directory)"

    analyze = sub.add_parser("analyze", help="Run the analyzers and store new suggestions")
    analyze.add_argument("--entities", required=True, help="Entity export JSON file")
    analyze.add_argument("--store", help=store_help)
    analyze.add_argument("--no-ai", action="store_true", help="Skip AI-assisted passes")
    analyze.add_argument("--entity", help="Only report suggestions for this entity (not stored)")
    analyze.add_argument("--max-per-type", type=int, help="Maximum suggestions per analyzer")
    analyze.add_argument("--min-score", type=float, help="Minimum relevance score (0-100)")

    should_run = sub.add_parser("should-run", help="Report whether a new analysis is worthwhile")
    should_run.add_argument("--entities", required=True, help="Entity export JSON file")
    should_run.add_argument("--store", help=store_help)

    stats = sub.add_parser("stats", help="Show suggestion store statistics")
    stats.add_argument("--store", help=store_help)

    history_help = "Action history JSON file (default: user data directory)"

    apply = sub.add_parser("apply", help="Execute the suggested action of a stored suggestion")
    apply.add_argument("suggestion_id", help="ID of the suggestion to apply")
    apply.add_argument("--entities", required=True, help="Entity export JSON file (updated in place)")
    apply.add_argument("--store", help=store_help)
    apply.add_argument("--history", help=history_help)

    undo = sub.add_parser("undo", help="Undo a previously applied action")
    undo.add_argument("entry_id", help="ID of the action history entry")
    undo.add_argument("--entities", required=True, help="Entity export JSON file (updated in place)")
    undo.add_argument("--store", help=store_help)
    undo.add_argument("--history", help=history_help)

    return parser


def _overrides(args, ai_available: bool) -> dict:
    overrides: dict = {"enable_ai_analysis": ai_available and not args.no_ai}
    if args.max_per_type is not None:
        overrides["max_suggestions_per_type"] = args.max_per_type
    if args.min_score is not None:
        overrides["min_relevance_score"] = args.min_score
    return overrides


def _cmd_analyze(args) -> int:
    entities = JsonEntityRepository(args.entities)
    suggestions = JsonSuggestionRepository(args.store or get_default_suggestion_store())

    generate = None
    if not args.no_ai:
        client = GenerationClient()
        if client.is_online:
            generate = client.generate

    service = SuggestionAnalysisService(entities, suggestions, generate=generate)
    overrides = _overrides(args, ai_available=generate is not None)

    if args.entity:
        try:
            result = asyncio.run(service.analyze_entity(args.entity, overrides))
        except EntityNotFoundError as exc:
            logger.error("%s", exc)
            return 1
    else:
        result = asyncio.run(service.run_full_analysis(overrides))

    _print_json(result.model_dump(by_alias=True, mode="json"))
    return 1 if result.errors else 0


def _cmd_should_run(args) -> int:
    entities = JsonEntityRepository(args.entities)
    suggestions = JsonSuggestionRepository(args.store or get_default_suggestion_store())
    service = SuggestionAnalysisService(entities, suggestions)
    _print_json({"shouldRun": service.should_run_analysis()})
    return 0


def _cmd_stats(args) -> int:
    suggestions = JsonSuggestionRepository(args.store or get_default_suggestion_store())
    _print_json(suggestions.get_stats().model_dump(by_alias=True, mode="json"))
    return 0


def _action_service(args) -> SuggestionActionService:
    return SuggestionActionService(
        JsonEntityRepository(args.entities),
        JsonSuggestionRepository(args.store or get_default_suggestion_store()),
        history_path=args.history or get_default_action_history(),
    )


def _cmd_apply(args) -> int:
    actions = _action_service(args)
    suggestion = actions.suggestions.get_by_id(args.suggestion_id)
    if suggestion is None:
        logger.error("Suggestion not found: %s", args.suggestion_id)
        return 1

    result = actions.execute_action(suggestion)
    report = result.model_dump(by_alias=True, mode="json")
    report["historyEntryId"] = actions.get_action_history()[-1].id
    _print_json(report)
    return 0 if result.success else 1


def _cmd_undo(args) -> int:
    undone = _action_service(args).undo_action(args.entry_id)
    _print_json({"undone": undone})
    return 0 if undone else 1


COMMANDS = {
    "analyze": _cmd_analyze,
    "should-run": _cmd_should_run,
    "stats": _cmd_stats,
    "apply": _cmd_apply,
    "undo": _cmd_undo,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
