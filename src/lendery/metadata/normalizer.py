# ABOUTME: Text cleanup shared by the provider parsers, scorer, and enrichment engine.
# ABOUTME: Validates ISBN shape, extracts years, dedupes candidates, splits mangled titles.

import re

import wordninja

from lendery.metadata.types import ExternalCandidate

# Author values that mean "nobody knows". Compared after lower() and strip().
PLACEHOLDER_AUTHORS = frozenset(
    {
        "",
        "unknown",
        "unknown author",
        "author unknown",
        "n/a",
        "na",
        "none",
        "-",
    }
)

# Label written when a record has no author at all.
PLACEHOLDER_AUTHOR_LABEL = "Unknown Author"

_ISBN_NOISE_RE = re.compile(r"[^0-9Xx]")
_YEAR_RE = re.compile(r"\b(1[0-9]{3}|20[0-9]{2}|2100)\b")
_MATCH_NOISE_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")

# A spaceless run at least this long is treated as concatenated words.
_MIN_CONCAT_LENGTH = 8
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z\d])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_LETTER_DIGIT_RE = re.compile(r"(?<=[a-zA-Z])(?=\d)|(?<=\d)(?=[a-zA-Z])")
_SEPARATOR_RE = re.compile(r"[-_]+")


def clean_text(value: object) -> str | None:
    """Collapse whitespace; return None for non-strings and blank strings."""
    if not isinstance(value, str):
        return None
    cleaned = _WHITESPACE_RE.sub(" ", value).strip()
    return cleaned or None


def normalize_isbn(value: object) -> str | None:
    """Strip everything but digits and X. Valid only at length 10 or 13."""
    if not isinstance(value, str):
        return None
    cleaned = _ISBN_NOISE_RE.sub("", value).upper()
    if len(cleaned) in (10, 13):
        return cleaned
    return None


def parse_published_year(raw: object) -> int | None:
    """Extract a publication year from a number or free text ("c. 1965", "2004-03-01")."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        return int(raw) if 0 <= raw <= 2100 else None
    if not isinstance(raw, str):
        return None
    match = _YEAR_RE.search(raw)
    return int(match.group(1)) if match else None


def is_placeholder_author(author: str | None) -> bool:
    if author is None:
        return True
    return author.strip().lower() in PLACEHOLDER_AUTHORS


def normalize_for_match(value: str | None) -> str:
    """Lowercase and reduce punctuation runs to single spaces for comparison."""
    if not value:
        return ""
    return _MATCH_NOISE_RE.sub(" ", value.lower()).strip()


def dedupe_candidates(candidates: list[ExternalCandidate]) -> list[ExternalCandidate]:
    """Drop repeats by ISBN, or by case-insensitive title|author when ISBN is absent.

    The first occurrence wins, so provider relevance order is preserved.
    """
    seen: set[str] = set()
    unique: list[ExternalCandidate] = []
    for candidate in candidates:
        key = candidate.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def _looks_concatenated(text: str) -> bool:
    if "_" in text or re.search(r"[a-z][A-Z]", text):
        return True
    return any(
        " " not in segment and len(segment) >= _MIN_CONCAT_LENGTH
        for segment in text.split("-")
    )


def split_concatenated(text: str) -> str:
    """Split a mangled catalog title into words.

    "TheTemplarLegacy" -> "The Templar Legacy"; "thetemplarlegacy" goes
    through wordninja. Titles that already contain spaces are returned as-is.
    """
    text = text.strip()
    if not text or " " in text or not _looks_concatenated(text):
        return text

    words: list[str] = []
    for segment in _SEPARATOR_RE.split(text):
        if not segment:
            continue
        for part in _CAMEL_BOUNDARY_RE.split(_LETTER_DIGIT_RE.sub(" ", segment)):
            for piece in part.split():
                if piece.islower() and len(piece) >= _MIN_CONCAT_LENGTH:
                    words.extend(wordninja.split(piece))
                else:
                    words.append(piece)
    return " ".join(words) if words else text
