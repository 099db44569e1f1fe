# ABOUTME: Heuristic match scoring between external candidates and catalog records.
# ABOUTME: Integer points for ISBN, title, author agreement plus fields a candidate could fill.

from typing import Any

from lendery.metadata.normalizer import is_placeholder_author, normalize_for_match
from lendery.metadata.types import ENRICHABLE_FIELDS, ExternalCandidate

ISBN_MATCH = 100
ISBN_MISMATCH = -30
TITLE_EXACT = 40
TITLE_PARTIAL = 20
AUTHOR_EXACT = 25
AUTHOR_PARTIAL = 10
PER_FILLABLE_FIELD = 6

# Due-date lookups use a smaller scale plus a page-count magnitude bonus.
VOLUME_TITLE_EXACT = 30
VOLUME_TITLE_PARTIAL = 15
VOLUME_AUTHOR_EXACT = 20
VOLUME_AUTHOR_PARTIAL = 10
VOLUME_PAGE_BONUS_CAP = 15
VOLUME_PAGES_PER_BONUS_POINT = 40


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def missing_fields(target: Any) -> set[str]:
    """Enrichable fields that are empty on `target` (placeholder authors count as empty).

    `target` is anything with catalog-style attributes; absent attributes
    count as empty, and None means nothing is known.
    """
    if target is None:
        return set(ENRICHABLE_FIELDS)
    missing = set()
    for field_name in ENRICHABLE_FIELDS:
        value = getattr(target, field_name, None)
        if field_name == "author":
            if is_placeholder_author(value):
                missing.add(field_name)
        elif _is_empty(value):
            missing.add(field_name)
    return missing


def fillable_fields(target: Any, candidate: ExternalCandidate) -> set[str]:
    """Fields the candidate could newly fill on `target`."""
    fillable = set()
    for field_name in missing_fields(target):
        value = getattr(candidate, field_name)
        if field_name == "author":
            if not is_placeholder_author(value):
                fillable.add(field_name)
        elif not _is_empty(value):
            fillable.add(field_name)
    return fillable


def _text_points(wanted: str, found: str, exact: int, partial: int) -> int:
    if not wanted or not found:
        return 0
    if wanted == found:
        return exact
    if wanted in found or found in wanted:
        return partial
    return 0


def score_candidate(target: Any, candidate: ExternalCandidate) -> int:
    """Score a candidate against a target record, or None for a raw search.

    Not a probability: higher is better, and callers break ties by
    encounter order.
    """
    score = 0
    target_isbn = getattr(target, "isbn", None) if target is not None else None
    if target_isbn and candidate.isbn:
        score += ISBN_MATCH if target_isbn == candidate.isbn else ISBN_MISMATCH

    if target is not None:
        score += _text_points(
            normalize_for_match(getattr(target, "title", None)),
            normalize_for_match(candidate.title),
            TITLE_EXACT,
            TITLE_PARTIAL,
        )
        target_author = getattr(target, "author", None)
        if not is_placeholder_author(target_author):
            score += _text_points(
                normalize_for_match(target_author),
                normalize_for_match(candidate.author),
                AUTHOR_EXACT,
                AUTHOR_PARTIAL,
            )

    score += PER_FILLABLE_FIELD * len(fillable_fields(target, candidate))
    return score


def score_volume(title: str, author: str, candidate: ExternalCandidate) -> int:
    """Score a candidate for page-count lookup. Requires candidate.page_count."""
    score = _text_points(
        normalize_for_match(title),
        normalize_for_match(candidate.title),
        VOLUME_TITLE_EXACT,
        VOLUME_TITLE_PARTIAL,
    )
    score += _text_points(
        normalize_for_match(author),
        normalize_for_match(candidate.author),
        VOLUME_AUTHOR_EXACT,
        VOLUME_AUTHOR_PARTIAL,
    )
    pages = candidate.page_count or 0
    score += min(VOLUME_PAGE_BONUS_CAP, pages // VOLUME_PAGES_PER_BONUS_POINT)
    return score
