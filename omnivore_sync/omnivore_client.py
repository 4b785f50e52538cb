"""Omnivore GraphQL API client.

Fetches saved articles (with highlights and labels) one search page at a time.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from omnivore_sync import config
from omnivore_sync.models import Article

log = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_DELAY_BASE = 2  # seconds; exponential: 2, 4, 8
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_SEARCH_QUERY = """\
query Search($after: String, $first: Int, $query: String) {
  search(first: $first, after: $after, query: $query) {
    ... on SearchSuccess {
      edges {
        node {
          id
          title
          slug
          siteName
          originalArticleUrl
          url
          author
          updatedAt
          savedAt
          pageType
          highlights {
            id
            quote
            annotation
            patch
            updatedAt
            highlightPositionAnchorIndex
          }
          labels {
            name
          }
        }
      }
      pageInfo {
        hasNextPage
      }
    }
    ... on SearchError {
      errorCodes
    }
  }
}
"""


class OmnivoreError(Exception):
    """Raised when Omnivore rejects a request or returns an unusable body."""


def _headers(api_key: str) -> dict:
    return {
        "Content-Type": "application/json",
        "Authorization": api_key,
    }


def _request_with_retry(method: str, url: str, **kwargs) -> requests.Response:
    """HTTP request with retry on transient failures.

    Retries on ConnectionError, Timeout, and 5xx/429 with exponential backoff.
    4xx client errors (except 429) propagate immediately.
    """
    last_exc = None
    for attempt in range(_MAX_RETRIES + 1):
        try:
            resp = requests.request(method, url, timeout=config.HTTP_TIMEOUT, **kwargs)

            if resp.status_code in _RETRYABLE_STATUS and attempt < _MAX_RETRIES:
                delay = _RETRY_DELAY_BASE * (2 ** attempt)
                log.warning(
                    "Omnivore returned %d, retrying in %ds (%d/%d)",
                    resp.status_code, delay, attempt + 1, _MAX_RETRIES,
                )
                time.sleep(delay)
                continue

            resp.raise_for_status()
            return resp

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            last_exc = exc
            if attempt < _MAX_RETRIES:
                delay = _RETRY_DELAY_BASE * (2 ** attempt)
                log.warning(
                    "Omnivore request failed (%s), retrying in %ds (%d/%d)",
                    type(exc).__name__, delay, attempt + 1, _MAX_RETRIES,
                )
                time.sleep(delay)
            else:
                raise

    raise last_exc  # type: ignore[misc]


def build_search_query(updated_after: Optional[str], query: str) -> str:
    """Combine the cursor and the user's filter into an Omnivore search string."""
    parts = []
    if updated_after:
        parts.append(f"updated:{updated_after}")
    parts.append("sort:saved-asc")
    if query:
        parts.append(query)
    return " ".join(parts)


def _parse_search(body: Dict[str, Any]) -> Tuple[List[Article], bool, int]:
    if body.get("errors"):
        messages = "; ".join(e.get("message", "?") for e in body["errors"])
        raise OmnivoreError(f"GraphQL error: {messages}")

    search = (body.get("data") or {}).get("search")
    if not isinstance(search, dict):
        raise OmnivoreError("Malformed search response")
    if "errorCodes" in search:
        raise OmnivoreError(f"Search failed: {', '.join(search['errorCodes'])}")

    try:
        edges = search["edges"]
        has_next_page = bool(search["pageInfo"]["hasNextPage"])
    except (KeyError, TypeError) as e:
        raise OmnivoreError(f"Malformed search response: missing {e}") from e

    articles = []
    skipped = 0
    for edge in edges:
        try:
            articles.append(Article.from_node(edge["node"]))
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping malformed article in search results: %s", e)
            skipped += 1
    return articles, has_next_page, skipped


def fetch_page(
    endpoint: str,
    api_key: str,
    after: int,
    first: int,
    updated_after: Optional[str],
    query: str,
) -> Tuple[List[Article], bool, int]:
    """Fetch one page of articles.

    Returns (articles, has_next_page, skipped), where ``skipped`` counts
    nodes that could not be parsed. ``after`` is a position offset into the
    result set, not an article count.
    """
    search = build_search_query(updated_after, query)
    log.debug("Fetching page after=%d first=%d query=%r", after, first, search)

    resp = _request_with_retry(
        "POST",
        endpoint,
        headers=_headers(api_key),
        json={
            "query": _SEARCH_QUERY,
            "variables": {"after": str(after), "first": first, "query": search},
        },
    )
    try:
        body = resp.json()
    except ValueError as e:
        raise OmnivoreError("Omnivore returned a non-JSON response") from e

    articles, has_next_page, skipped = _parse_search(body)
    log.info("Fetched %d article(s) at offset %d", len(articles), after)
    return articles, has_next_page, skipped
