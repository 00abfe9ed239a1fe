"""
Rendering of model output: citation links, sanitizing and medical term annotation.
"""
from .citation_linker import CitationLinker, LinkedText, link_citations
from .formatting import RenderedAnswer, render_answer, render_summary
from .sanitizer import sanitize_html, sanitize_prompt, sanitize_summary
from .term_annotator import AnnotatedText, TermReference, annotate_terms, render_reference_list

__all__ = [
    'CitationLinker',
    'LinkedText',
    'link_citations',
    'RenderedAnswer',
    'render_answer',
    'render_summary',
    'sanitize_html',
    'sanitize_prompt',
    'sanitize_summary',
    'AnnotatedText',
    'TermReference',
    'annotate_terms',
    'render_reference_list',
]
