"""Highlight ordering.

Omnivore returns an article's highlights in update order. When the user asks
for location order, web highlights are placed by the offset encoded in their
diff-match-patch ``patch`` and file highlights (PDFs) by their anchor index.
"""

import functools
import logging
from typing import List, Optional

from diff_match_patch import diff_match_patch

from omnivore_sync.models import Article, Highlight, HighlightOrder, PageKind

log = logging.getLogger(__name__)

_DMP = diff_match_patch()


class LocationPatchError(ValueError):
    """Raised when a highlight's location patch cannot be decoded."""


def decode_patch_location(patch: str) -> int:
    """Return the 0-based offset of the first hunk in a patch text."""
    try:
        patches = _DMP.patch_fromText(patch)
    except ValueError as e:
        raise LocationPatchError(f"Invalid location patch: {e}") from e
    if not patches:
        raise LocationPatchError("Empty location patch")
    return patches[0].start1 or 0


def _patch_location(highlight: Highlight) -> Optional[int]:
    try:
        return decode_patch_location(highlight.patch)
    except LocationPatchError as e:
        log.debug("Highlight %s: %s", highlight.id, e)
        return None


def _cmp(a: int, b: int) -> int:
    return (a > b) - (a < b)


def _compare_in_file(a: Highlight, b: Highlight) -> int:
    return _cmp(a.position_in_file or 0, b.position_in_file or 0)


def compare_highlights(
    order: HighlightOrder, page_kind: PageKind, a: Highlight, b: Highlight,
) -> int:
    """Three-way comparison of two highlights of the same article."""
    if order is not HighlightOrder.LOCATION:
        return 0
    if page_kind is PageKind.FILE:
        return _compare_in_file(a, b)

    loc_a = _patch_location(a)
    loc_b = _patch_location(b)
    if loc_a is None or loc_b is None:
        return _compare_in_file(a, b)
    return _cmp(loc_a, loc_b)


def order_highlights(article: Article, order: HighlightOrder) -> List[Highlight]:
    """Return the article's highlights in the configured order.

    The sort is stable, so ties keep the order Omnivore returned them in.
    """
    highlights = list(article.highlights)
    if order is not HighlightOrder.LOCATION or len(highlights) < 2:
        return highlights

    key = functools.cmp_to_key(
        lambda a, b: compare_highlights(order, article.page_kind, a, b)
    )
    return sorted(highlights, key=key)
