"""
Answer rendering: citation links -> line formatting -> sanitize -> term annotation.
"""
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
import re

from app.models import BibliographicArticle
from app.rendering.citation_linker import CitationLinker
from app.rendering.sanitizer import sanitize_html, sanitize_summary
from app.rendering.term_annotator import TermReference, annotate_terms, render_reference_list

_linker = CitationLinker()


@dataclass(frozen=True)
class RenderedAnswer:
    html: str
    references: Tuple[TermReference, ...] = ()
    linked_urls: Tuple[str, ...] = ()
    reference_list_html: str = ""

    def references_as_dicts(self) -> List[dict]:
        return [
            {"term": r.term, "display": r.display, "definition": r.definition, "reference": r.reference}
            for r in self.references
        ]


def format_lines(text: str) -> str:
    """Plain model text to line-broken HTML: newlines, "* " bullets and numbered items."""
    html = text.replace("\n", "<br>")
    html = re.sub(r"\*\s", "<br>• ", html)
    html = re.sub(r"(\d+\.\s)", r"<br>\1", html)
    return re.sub(r"^\s*<br>", "", html)


def render_answer(text: str, articles: Sequence[BibliographicArticle] = ()) -> RenderedAnswer:
    linked = _linker.link(text or "", articles)
    safe = sanitize_html(format_lines(linked.text))
    annotated = annotate_terms(safe)
    return RenderedAnswer(
        html=annotated.html,
        references=annotated.references,
        linked_urls=linked.emitted_urls,
        reference_list_html=render_reference_list(annotated.references),
    )


def render_summary(text: str) -> str:
    """Clinical summary: **bold** markers and newlines, narrow allow-list."""
    html = re.sub(r"\*\*(.*?)\*\*", r"<strong>\1</strong>", text or "")
    return sanitize_summary(html.replace("\n", "<br>"))
