"""
campaign_engine/paths.py -- Default locations for engine data files.

Uses platformdirs for the per-user data directory.  The directory can be
overridden with the ``CAMPAIGN_ENGINE_DATA_DIR`` environment variable.
"""

from __future__ import annotations

import os

from platformdirs import user_data_dir

_APP_NAME = "CampaignSuggestionEngine"
_APP_AUTHOR = "CampaignEngine"

DATA_DIR_ENV_VAR = "CAMPAIGN_ENGINE_DATA_DIR"


def get_user_data_dir() -> str:
    """Return the data directory, creating it if needed."""
    path = os.environ.get(DATA_DIR_ENV_VAR) or user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def get_default_suggestion_store() -> str:
    return os.path.join(get_user_data_dir(), "suggestions.json")


def get_default_action_history() -> str:
    return os.path.join(get_user_data_dir(), "action-history.json")
