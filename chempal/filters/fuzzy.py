# chempal/filters/fuzzy.py

"""Query-relevance filtering of raw supplier candidates."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from rapidfuzz import fuzz, process
from rapidfuzz.utils import default_process

from chempal.config.settings import Settings

logger = logging.getLogger("chempal.filters")

T = TypeVar("T")


@dataclass(frozen=True)
class FuzzyMatch(Generic[T]):
    """A candidate with its WRatio score and original position."""

    item: T
    score: float
    index: int


def _default_title(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return str(item.get("title") or item.get("name") or "")
    return str(getattr(item, "title", "") or "")


def fuzzy_rank(
    query: str,
    candidates: Sequence[T],
    title: Callable[[T], str] = _default_title,
    cutoff: float | None = None,
) -> list[FuzzyMatch[T]]:
    """Score *candidates* against *query*, drop those under *cutoff*.

    Results are ordered by descending score; equal scores keep their
    input order.
    """
    if not candidates:
        return []
    threshold = Settings.FUZZY_CUTOFF if cutoff is None else cutoff
    titles = [title(c) for c in candidates]
    scored = process.extract(
        query,
        titles,
        scorer=fuzz.WRatio,
        processor=default_process,
        score_cutoff=threshold,
        limit=None,
    )
    matches = [
        FuzzyMatch(item=candidates[idx], score=float(score), index=idx)
        for _, score, idx in scored
    ]
    matches.sort(key=lambda m: (-m.score, m.index))
    logger.debug(
        "Fuzzy filter '%s': %d of %d candidates >= %.0f",
        query,
        len(matches),
        len(candidates),
        threshold,
    )
    return matches


def fuzzy_filter(
    query: str,
    candidates: Sequence[T],
    title: Callable[[T], str] = _default_title,
    cutoff: float | None = None,
) -> list[T]:
    """Like :func:`fuzzy_rank` but return only the candidates."""
    return [m.item for m in fuzzy_rank(query, candidates, title, cutoff)]
