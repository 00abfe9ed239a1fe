"""
Medical term annotation for rendered answers.

Wraps the first visible occurrence of each medical term in a
<span class="medical-term"> carrying its definition, and collects one
reference per term in order of appearance. Markup is never rewritten:
only text between tags is scanned, and text already inside a medical-term
span is skipped.
"""
from dataclasses import dataclass
from html import escape
from typing import Dict, List, Optional, Tuple
import re

from app.rendering.medical_terms import MEDICAL_TERMS, TermInfo, classify, lookup

_TAG_SPLIT_RE = re.compile(r"(<[^>]*>)")
_WORD_RE = re.compile(r"\w+")
_TERM_SPAN_OPEN_RE = re.compile(r"<span\b[^>]*\bclass=\"[^\"]*\bmedical-term\b", re.IGNORECASE)
_SPAN_OPEN_RE = re.compile(r"<span\b", re.IGNORECASE)
_SPAN_CLOSE_RE = re.compile(r"</span\s*>", re.IGNORECASE)

TEXT, TAG, TERM = "text", "tag", "term"


@dataclass(frozen=True)
class TermReference:
    term: str        # lowercased identifier, matches data-term
    display: str     # matched text, title-cased
    definition: str
    reference: str
    source: str


@dataclass(frozen=True)
class AnnotatedText:
    html: str
    references: Tuple[TermReference, ...] = ()


@dataclass
class _Token:
    kind: str
    value: str
    ref: Optional[TermReference] = None


def _tokenize(html: str) -> List[_Token]:
    tokens = []
    term_depth = 0
    for part in _TAG_SPLIT_RE.split(html):
        if not part:
            continue
        if part.startswith("<"):
            if term_depth:
                if _SPAN_OPEN_RE.match(part):
                    term_depth += 1
                elif _SPAN_CLOSE_RE.match(part):
                    term_depth -= 1
            elif _TERM_SPAN_OPEN_RE.match(part):
                term_depth = 1
            tokens.append(_Token(TAG, part))
        else:
            tokens.append(_Token(TERM if term_depth else TEXT, part))
    return tokens


def _pattern(word: str, case_sensitive: bool) -> re.Pattern:
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", flags)


def _candidates(tokens: List[_Token]) -> List[Tuple[str, TermInfo, re.Pattern]]:
    """Distinct terms present in the visible text: dictionary phrases first, then heuristic words."""
    text = "\n".join(t.value for t in tokens if t.kind == TEXT)
    found: Dict[str, Tuple[str, TermInfo, re.Pattern]] = {}

    for term in MEDICAL_TERMS:
        pattern = _pattern(term, case_sensitive=False)
        if pattern.search(text):
            found[term] = (term, lookup(term), pattern)

    for match in _WORD_RE.finditer(text):
        word = match.group(0)
        if not word.isalpha():
            continue
        info = classify(word)
        if info is None or info.term in found:
            continue
        found[info.term] = (word, info, _pattern(word, case_sensitive=info.source == "acronym"))

    # Longest first so a phrase is not pre-empted by one of its words
    return sorted(found.values(), key=lambda c: len(c[0]), reverse=True)


def _span(matched: str, ref: TermReference) -> str:
    title = f"{ref.display}: {ref.definition} Referencia: {ref.reference}"
    return (
        f'<span class="medical-term" data-term="{escape(ref.term, quote=True)}" '
        f'title="{escape(title, quote=True)}">{matched}</span>'
    )


def _annotate_first(tokens: List[_Token], info: TermInfo, pattern: re.Pattern) -> List[_Token]:
    for i, token in enumerate(tokens):
        if token.kind != TEXT:
            continue
        match = pattern.search(token.value)
        if match is None:
            continue
        matched = match.group(0)
        ref = TermReference(
            term=info.term,
            display=matched.title(),
            definition=info.definition,
            reference=info.reference,
            source=info.source,
        )
        replacement = [
            _Token(TEXT, token.value[: match.start()]),
            _Token(TERM, _span(matched, ref), ref),
            _Token(TEXT, token.value[match.end():]),
        ]
        return tokens[:i] + [t for t in replacement if t.value] + tokens[i + 1:]
    return tokens


def annotate_terms(html: str) -> AnnotatedText:
    """Annotate the first occurrence of each medical term in html."""
    if not html:
        return AnnotatedText(html or "")

    tokens = _tokenize(html)
    for _, info, pattern in _candidates(tokens):
        tokens = _annotate_first(tokens, info, pattern)

    references = tuple(t.ref for t in tokens if t.ref is not None)
    return AnnotatedText(html="".join(t.value for t in tokens), references=references)


def render_reference_list(references: Tuple[TermReference, ...]) -> str:
    """Consolidated reference list, one entry per term, in order of first appearance."""
    if not references:
        return ""
    items = "".join(
        f"<li><strong>{escape(ref.display)}</strong>: {escape(ref.reference)}</li>"
        for ref in references
    )
    return f'<ol class="medical-references">{items}</ol>'
