"""
Shared utility functions for the campaign suggestion engine.

Holds the small text and scoring helpers every analyzer needs (name
normalisation, Levenshtein similarity, score clamping, keyword extraction)
and the JSON I/O helpers used by the file-backed stores.

All JSON writes use atomic temp-file-then-os.replace() to prevent
data corruption from crashes or concurrent access.
"""

import json
import logging
import os
import re
import secrets
import tempfile
import unicodedata
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).

    Returns
    -------
    object
        Parsed JSON content, or *default* on failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, OSError):
        logger.warning("Could not read JSON from %s", path, exc_info=True)
        return default


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()`` so that readers never see a partially-written file.
    Parent directories are created if they do not exist.
    """
    path = str(path)
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Identifiers and time
# ---------------------------------------------------------------------------

def slugify(text: str) -> str:
    """Convert a human-readable name to a URL-friendly slug.

    Examples:
        "Captain Roderick"  -> "captain-roderick"
        "The Gilded Hand"   -> "the-gilded-hand"
        "Mira's Rest"       -> "miras-rest"
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['’]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return re.sub(r"-+", "-", text).strip("-")


def generate_id(name: str) -> str:
    """Generate an entity ID in the format ``slugified-name-XXXX``."""
    slug = slugify(name) or "entity"
    return f"{slug}-{secrets.token_hex(2)}"


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat a timezone-less datetime as UTC; aware values are left alone."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

STOP_WORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "has", "have", "had", "do", "does", "did", "will", "would", "shall",
    "should", "may", "might", "can", "could", "of", "in", "to", "for",
    "with", "on", "at", "from", "by", "about", "as", "into", "through",
    "and", "but", "or", "nor", "not", "so", "yet", "both", "either",
    "neither", "each", "every", "all", "any", "few", "more", "most",
    "other", "some", "such", "no", "only", "own", "same", "than", "too",
    "very", "just", "because", "if", "when", "while", "that", "this",
    "it", "its", "he", "she", "they", "them", "his", "her", "their",
    "which", "who", "whom", "what", "where", "how", "also", "then",
    "there", "after", "before", "between", "over", "under",
})


def normalize_name(name) -> str:
    """Lowercase and trim an entity name.  ``None`` becomes ``""``."""
    if not name:
        return ""
    return str(name).lower().strip()


def normalize_title(text: str) -> str:
    """Strip everything but lowercase letters and digits from *text*."""
    return re.sub(r"[^a-z0-9]", "", (text or "").lower())


def extract_keywords(text: str, stop_words=STOP_WORDS) -> list[str]:
    """Return the 4+ letter words of *text* that are not stop words.

    Order of first appearance is preserved; repeats are dropped.
    """
    words = re.findall(r"\b[a-z]{4,}\b", (text or "").lower())
    seen: set[str] = set()
    keywords = []
    for word in words:
        if word in stop_words or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    return keywords


def contains_term(text: str, term: str) -> bool:
    """True if *term* occurs in *text* as a whole word or phrase.

    Both arguments are expected to be lowercase already.
    """
    if not term or not text:
        return False
    pattern = r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])"
    return re.search(pattern, text) is not None


# ---------------------------------------------------------------------------
# Similarity and scoring
# ---------------------------------------------------------------------------

def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def name_similarity(a: str, b: str) -> float:
    """Normalised similarity ``1 - distance / max(len)`` of two names.

    Names are normalised first.  Returns 0.0 when either name is blank so
    that unnamed entities never look like duplicates of each other.
    """
    a = normalize_name(a)
    b = normalize_name(b)
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def clamp_score(value, low: float = 0, high: float = 100) -> float:
    """Clamp a relevance score into ``[low, high]``."""
    return max(low, min(high, value))


def pair_key(first_id: str, second_id: str) -> tuple[str, str]:
    """Order-independent key for a pair of entity IDs."""
    return (first_id, second_id) if first_id <= second_id else (second_id, first_id)
