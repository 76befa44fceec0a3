"""
Shared pytest fixtures for the campaign suggestion engine test suite.

Provides:
    - project_root: path to the real project root
    - make_entity / make_link: factories for campaign entities and links
    - fake_clock: manual clock + sleep pair for the rate-limited task queue
    - fake_generator / scripted_generator: stand-ins for GenerationClient.generate
    - no_ai_config / ai_config: analysis configs with AI passes off / on
"""

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure campaign_engine/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from campaign_engine.generation_client import GenerationResult  # noqa: E402
from campaign_engine.models.base import AnalysisConfig, Entity, Link  # noqa: E402


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class FakeClock:
    """Manual monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeGenerator:
    """Scripted async ``generate(prompt, temperature=...)`` callable.

    Each call pops the next scripted response; once the script runs out,
    *default* is returned.  A response may be a string (successful reply),
    a ``GenerationResult`` or an exception instance (raised).
    """

    def __init__(self, responses=None, default="NO"):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[tuple[str, float]] = []

    async def __call__(self, prompt, temperature=0.7, system_prompt=""):
        self.calls.append((prompt, temperature))
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, GenerationResult):
            return response
        return GenerationResult(success=True, content=response)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def project_root():
    """Return the absolute path to the real project root directory."""
    return str(PROJECT_ROOT)


@pytest.fixture
def make_link():
    """Factory for ``Link`` objects."""
    def _make(target_id, relationship="knows", target_type="npc", bidirectional=False,
              reverse_relationship=None):
        return Link(
            target_id=target_id,
            target_type=target_type,
            relationship=relationship,
            bidirectional=bidirectional,
            reverse_relationship=reverse_relationship,
        )
    return _make


@pytest.fixture
def make_entity():
    """Factory for ``Entity`` objects with sensible empty defaults."""
    def _make(entity_id, name="", entity_type="npc", description="", tags=None,
              fields=None, links=None, **extra):
        return Entity(
            id=entity_id,
            type=entity_type,
            name=name,
            description=description,
            tags=tags or [],
            fields=fields or {},
            links=links or [],
            **extra,
        )
    return _make


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_generator():
    """Generator that answers "NO" to everything unless scripted."""
    return FakeGenerator()


@pytest.fixture
def scripted_generator():
    """Factory: ``scripted_generator(["YES ...", RuntimeError()], default="NO")``."""
    return FakeGenerator


@pytest.fixture
def no_ai_config():
    return AnalysisConfig(enable_ai_analysis=False)


@pytest.fixture
def ai_config():
    return AnalysisConfig(enable_ai_analysis=True, rate_limit_ms=0)
