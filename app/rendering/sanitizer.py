"""
HTML sanitizing for model output and user prompts.

Model output is rendered as HTML, so anything outside the allow-list is
stripped (script and style bodies are dropped entirely).
"""
import re

import nh3

ANSWER_TAGS = {
    "b", "strong", "i", "em", "u", "br", "p", "ul", "ol", "li",
    "h1", "h2", "h3", "code", "pre", "blockquote", "a",
}
ANSWER_ATTRIBUTES = {"a": {"href", "title", "target", "rel", "class"}}

SUMMARY_TAGS = {"b", "strong", "i", "em", "u", "br", "p"}

URL_SCHEMES = {"http", "https", "mailto"}
DROPPED_CONTENT_TAGS = {"script", "style"}

_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JAVASCRIPT_URL_RE = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)


def sanitize_html(html: str) -> str:
    """Sanitize a rendered answer against the answer allow-list."""
    if not html:
        return ""
    return nh3.clean(
        html,
        tags=ANSWER_TAGS,
        attributes=ANSWER_ATTRIBUTES,
        clean_content_tags=DROPPED_CONTENT_TAGS,
        url_schemes=URL_SCHEMES,
        # rel is allowed and set explicitly by the citation linker
        link_rel=None,
    )


def sanitize_summary(html: str) -> str:
    """Sanitize a clinical summary: inline formatting only, no attributes."""
    if not html:
        return ""
    return nh3.clean(
        html,
        tags=SUMMARY_TAGS,
        attributes={},
        clean_content_tags=DROPPED_CONTENT_TAGS,
        link_rel=None,
    )


def sanitize_prompt(prompt: str) -> str:
    """Strip script blocks, javascript: URLs and inline event handlers from a prompt."""
    cleaned = _SCRIPT_BLOCK_RE.sub("", prompt or "")
    cleaned = _JAVASCRIPT_URL_RE.sub("", cleaned)
    cleaned = _INLINE_HANDLER_RE.sub("", cleaned)
    return cleaned.strip()
