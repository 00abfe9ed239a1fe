"""
Citation linking: turn article titles mentioned in an answer into links.

For every article, in the order given, four patterns are tried from most to
least specific:

    1. "Title" (2022)   quoted title followed by a year
    2. Title (2022)     bare title followed by a year
    3. "Title"          quoted title
    4. Title            bare title as a whole word

Only the first match of each pattern is considered. A match that touches an
existing anchor (inserted earlier in the pass, or already present in the
input) is left alone, and an article is linked at most once. Quotes and the
year always stay outside the anchor.
"""
from dataclasses import dataclass
from html import escape
from typing import List, Optional, Sequence, Tuple
import re

from app.models import BibliographicArticle

REFERENCES_HEADING = "Referencias:"
PUBMED_REFERENCES_HEADING = "Referencias de PubMed:"

_ANCHOR_OPEN_RE = re.compile(r"<a\b[^>]*>", re.IGNORECASE)
_ANCHOR_CLOSE_RE = re.compile(r"</a\s*>", re.IGNORECASE)

_OPEN_QUOTES = "\"“«"
_CLOSE_QUOTES = "\"”»"
_YEAR = r"\s*\(\d{4}\)"

Range = Tuple[int, int]


@dataclass(frozen=True)
class LinkedText:
    text: str
    linked_ranges: Tuple[Range, ...] = ()
    emitted_urls: Tuple[str, ...] = ()


def anchor_ranges(text: str) -> List[Range]:
    """[start, end) spans of every <a ...>...</a> element in text."""
    ranges = []
    pos = 0
    while True:
        opening = _ANCHOR_OPEN_RE.search(text, pos)
        if opening is None:
            return ranges
        closing = _ANCHOR_CLOSE_RE.search(text, opening.end())
        end = closing.end() if closing else len(text)
        ranges.append((opening.start(), end))
        pos = end


def title_patterns(title: str) -> List[re.Pattern]:
    """The four title patterns, most specific first. Group "title" is the linked span."""
    t = re.escape(title)
    oq = f"[{_OPEN_QUOTES}]"
    cq = f"[{_CLOSE_QUOTES}]"
    return [
        re.compile(rf"{oq}(?P<title>{t}){cq}{_YEAR}", re.IGNORECASE),
        re.compile(rf"(?<!\w)(?P<title>{t}){_YEAR}", re.IGNORECASE),
        re.compile(rf"{oq}(?P<title>{t}){cq}", re.IGNORECASE),
        re.compile(rf"(?<!\w)(?P<title>{t})(?!\w)", re.IGNORECASE),
    ]


def build_anchor(url: str, label: str) -> str:
    return (
        f'<a href="{escape(url, quote=True)}" target="_blank" '
        f'rel="noopener noreferrer" class="pubmed-link">{label}</a>'
    )


class CitationLinker:
    """Stateless; link() can be shared across requests."""

    def _overlaps(self, ranges: List[Range], start: int, end: int) -> bool:
        return any(start < r_end and r_start < end for r_start, r_end in ranges)

    def _link_article(self, text: str, article: BibliographicArticle, ranges: List[Range]) -> Tuple[str, Optional[Range]]:
        for pattern in title_patterns(article.title):
            match = pattern.search(text)
            if match is None:
                continue
            start, end = match.span("title")
            if self._overlaps(ranges, start, end):
                continue

            anchor = build_anchor(article.url, text[start:end])
            shift = len(anchor) - (end - start)
            ranges[:] = [(s + shift, e + shift) if s >= end else (s, e) for s, e in ranges]
            new_range = (start, start + len(anchor))
            ranges.append(new_range)
            ranges.sort()
            return text[:start] + anchor + text[end:], new_range
        return text, None

    def link(self, text: str, articles: Sequence[BibliographicArticle]) -> LinkedText:
        if not text:
            return LinkedText(text or "")

        ranges = anchor_ranges(text)
        linked: List[Range] = []
        urls: List[str] = []
        for article in articles:
            if not article.title or not article.url:
                continue
            text, new_range = self._link_article(text, article, ranges)
            if new_range is not None:
                linked.append(new_range)
                urls.append(article.url)

        if REFERENCES_HEADING in text and any("pubmed" in url for url in urls):
            text = text.replace(REFERENCES_HEADING, PUBMED_REFERENCES_HEADING)
            # Heading may sit before links; recompute offsets on the final text
            linked = [r for r in anchor_ranges(text) if any(
                escape(url, quote=True) in text[r[0]:r[1]] for url in urls
            )]

        return LinkedText(text=text, linked_ranges=tuple(sorted(linked)), emitted_urls=tuple(urls))


def link_citations(text: str, articles: Sequence[BibliographicArticle]) -> str:
    return CitationLinker().link(text, articles).text
