"""Articles and highlights as fetched from Omnivore.

Records are transient: parsed from a search page, rendered, then discarded.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class PageKind(str, Enum):
    WEB = "WEB"
    FILE = "FILE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PageKind":
        """Map Omnivore's pageType onto the three kinds we order by."""
        value = (value or "").upper()
        if value == "FILE":
            return cls.FILE
        if value in ("ARTICLE", "WEBSITE", "WEB"):
            return cls.WEB
        return cls.OTHER


class HighlightOrder(str, Enum):
    LOCATION = "LOCATION"
    TIME = "TIME"


class Filter(str, Enum):
    ALL = "ALL"
    HIGHLIGHTS = "HIGHLIGHTS"
    ADVANCED = "ADVANCED"


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Naive values are taken as UTC. Missing or malformed values fall back to
    the epoch so one bad record cannot stop a sync.
    """
    if not value:
        return _EPOCH
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        log.warning("Unparseable timestamp %r, using epoch", value)
        return _EPOCH
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Label:
    name: str


@dataclass(frozen=True)
class Highlight:
    id: str
    quote: str
    updated_at: datetime
    patch: str = ""
    annotation: Optional[str] = None
    position_in_file: Optional[int] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "Highlight":
        position = node.get("highlightPositionAnchorIndex")
        return cls(
            id=str(node.get("id", "")),
            quote=node.get("quote") or "",
            updated_at=parse_timestamp(node.get("updatedAt")),
            patch=node.get("patch") or "",
            annotation=node.get("annotation") or None,
            position_in_file=int(position) if position is not None else None,
        )


@dataclass(frozen=True)
class Article:
    id: str
    slug: str
    title: str
    original_url: str
    saved_at: datetime
    page_kind: PageKind = PageKind.WEB
    author: Optional[str] = None
    site_name: Optional[str] = None
    labels: List[Label] = field(default_factory=list)
    highlights: List[Highlight] = field(default_factory=list)

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "Article":
        """Build an Article from one ``search`` edge node."""
        return cls(
            id=str(node.get("id", "")),
            slug=node["slug"],
            title=node.get("title") or "",
            original_url=node.get("originalArticleUrl") or node.get("url") or "",
            saved_at=parse_timestamp(node.get("savedAt")),
            page_kind=PageKind.parse(node.get("pageType")),
            author=node.get("author") or None,
            site_name=node.get("siteName") or None,
            labels=[Label(name=l["name"]) for l in node.get("labels") or []],
            highlights=[Highlight.from_node(h) for h in node.get("highlights") or []],
        )
