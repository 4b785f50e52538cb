"""Render an Omnivore article and its highlights to a markdown note.

Notes are assembled from two user templates: one for the article body
(frontmatter, title, links) and one rendered once per highlight.
"""

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from jinja2 import BaseLoader, Environment, TemplateError

from omnivore_sync.models import Article, Highlight

log = logging.getLogger(__name__)

OMNIVORE_BASE_URL = "https://omnivore.app/me"

HIGHLIGHTS_HEADING = "## Highlights\n\n"

DEFAULT_ARTICLE_TEMPLATE = """\
---
{% if author %}
author: {{ author }}
{% endif %}
{% if labels %}
tags:
{% for label in labels %}
  - {{ label.name }}
{% endfor %}
{% endif %}
date_saved: {{ date_saved }}
---

# {{ title }}
#Omnivore

[Omnivore Source]({{ omnivore_url }})
[Original Source]({{ original_url }})"""

DEFAULT_HIGHLIGHT_TEMPLATE = """\
> {{ text }} [⤴️]({{ highlight_url }})
{% if note %}

{{ note }}
{% endif %}"""


class RenderError(Exception):
    """Raised when a template cannot be compiled or rendered."""


def _finalize(value: Any) -> Any:
    # Absent optional fields render as nothing, not "None"
    return "" if value is None else value


_ENV = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    finalize=_finalize,
)


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Render a Jinja2 template string with the given context."""
    try:
        return _ENV.from_string(template).render(**context)
    except TemplateError as e:
        raise RenderError(f"Template error: {e}") from e
    # Expressions in user templates fail with ordinary Python errors
    except (TypeError, ValueError, ArithmeticError, AttributeError, LookupError) as e:
        raise RenderError(f"Template failed to render: {e}") from e


def site_name_from_url(url: str) -> str:
    """Return the hostname of a URL without a leading ``www.``, or ""."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return ""
    if not hostname:
        return ""
    return hostname[4:] if hostname.startswith("www.") else hostname


def sanitize_label(name: str) -> str:
    """Make a label usable as a tag (only the first space is replaced)."""
    return name.replace(" ", "_", 1)


def _quote_lines(text: str) -> str:
    return text.replace("\n", "\n> ")


def article_context(article: Article, date_format: str) -> Dict[str, Any]:
    return {
        "id": article.id,
        "title": article.title,
        "omnivore_url": f"{OMNIVORE_BASE_URL}/{article.slug}",
        "site_name": article.site_name or site_name_from_url(article.original_url),
        "original_url": article.original_url,
        "author": article.author,
        "labels": [{"name": sanitize_label(l.name)} for l in article.labels],
        "date_saved": article.saved_at.strftime(date_format),
    }


def highlight_context(article: Article, highlight: Highlight) -> Dict[str, Any]:
    return {
        "text": _quote_lines(highlight.quote),
        "highlight_url": f"{OMNIVORE_BASE_URL}/{article.slug}#{highlight.id}",
        "date_highlighted": highlight.updated_at.strftime("%a %b %d %Y %H:%M:%S GMT%z"),
        "note": highlight.annotation,
    }


def render_article(
    article: Article,
    highlights: List[Highlight],
    article_template: str,
    highlight_template: str,
    date_format: str,
    render: Optional[Callable[[str, Dict[str, Any]], str]] = None,
) -> str:
    """Build the full note for one article.

    ``highlights`` must already be in display order. ``render`` is the
    template capability and defaults to Jinja2.
    """
    render = render or render_template

    content = render(article_template, article_context(article, date_format))
    content += "\n\n"

    if highlights:
        content += HIGHLIGHTS_HEADING
        for highlight in highlights:
            fragment = render(highlight_template, highlight_context(article, highlight))
            content += f"{fragment}\n"

    return content
