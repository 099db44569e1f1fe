# ABOUTME: Deterministic placeholder metadata for records no provider could match.
# ABOUTME: Genre keyword rules, an SVG cover, and hash-derived rating values.

import hashlib
import html
import re
from urllib.parse import quote

from lendery.metadata.normalizer import normalize_for_match

# Ordered rules over title + description; the first match wins.
GENRE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            r"\b(space|galax\w*|planets?|star ?ships?|aliens?|robots?|sci-?fi|science fiction)\b"
        ),
        "Science Fiction",
    ),
    (
        re.compile(
            r"\b(dragons?|wizards?|witch\w*|magic\w*|sorcer\w*|elf|elves|kingdoms?|fantasy)\b"
        ),
        "Fantasy",
    ),
    (
        re.compile(r"\b(murders?|detectives?|myster\w*|crimes?|killers?|investigat\w*|thriller)\b"),
        "Mystery",
    ),
    (
        re.compile(r"\b(history|historical|wars?|empires?|century|revolution\w*|ancient)\b"),
        "History",
    ),
    (re.compile(r"\b(biograph\w*|memoirs?|life of|autobiograph\w*)\b"), "Biography"),
    (re.compile(r"\b(poems?|poetry|verses?|sonnets?)\b"), "Poetry"),
    (re.compile(r"\b(love|romance|romantic|wedding|bride)\b"), "Romance"),
    (re.compile(r"\b(children|kids|bedtime|picture book|fairy tales?)\b"), "Children"),
)
DEFAULT_GENRE = "General"

RATING_FLOOR = 3.4
RATING_STEPS = 14
COUNT_FLOOR = 12
COUNT_SPAN = 240

_COVER_PALETTE = ("#264653", "#2a9d8f", "#8a5a44", "#6d597a", "#355070", "#9c6644")


def stable_hash(title: str, author: str) -> int:
    """An unsigned 64-bit hash of the normalized title and author.

    Independent of process, platform, and hash randomization.
    """
    key = f"{normalize_for_match(title)}|{normalize_for_match(author)}"
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def synthetic_rating(title: str, author: str) -> tuple[float, int]:
    """Derive (average_rating, ratings_count) from the title/author hash.

    Rating lies in [3.4, 4.7] in steps of 0.1; count lies in [12, 252).
    """
    h = stable_hash(title, author)
    rating = round(RATING_FLOOR + (h % RATING_STEPS) / 10, 1)
    count = COUNT_FLOOR + (h >> 8) % COUNT_SPAN
    return rating, count


def infer_genre(title: str, description: str | None = None) -> str:
    text = f"{title} {description or ''}".lower()
    for pattern, genre in GENRE_RULES:
        if pattern.search(text):
            return genre
    return DEFAULT_GENRE


def initials(title: str) -> str:
    words = [w for w in re.split(r"\s+", title.strip()) if w and w[0].isalnum()]
    letters = "".join(w[0].upper() for w in words[:2])
    return letters or "?"


def render_cover(title: str, author: str) -> str:
    """Render a simple SVG cover and return it as a data URI."""
    color = _COVER_PALETTE[stable_hash(title, author) % len(_COVER_PALETTE)]
    short_title = title if len(title) <= 28 else title[:27] + "…"
    short_author = author if len(author) <= 32 else author[:31] + "…"
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg" width="300" height="450" viewBox="0 0 300 450">'
        f'<rect width="300" height="450" fill="{color}"/>'
        '<text x="150" y="190" font-family="Georgia, serif" font-size="96" '
        f'fill="#ffffff" text-anchor="middle">{html.escape(initials(title))}</text>'
        '<text x="150" y="300" font-family="Georgia, serif" font-size="20" '
        f'fill="#ffffff" text-anchor="middle">{html.escape(short_title)}</text>'
        '<text x="150" y="340" font-family="Helvetica, sans-serif" font-size="15" '
        f'fill="#f1f1f1" text-anchor="middle">{html.escape(short_author)}</text>'
        "</svg>"
    )
    return "data:image/svg+xml;charset=utf-8," + quote(svg, safe="")
