"""
Retrieval module: translation, keyword extraction and bibliographic search.
"""

# allows users to do: from app.retrieval import ReferenceSearch, BibliographicSearchClient
from .bibliographic import BibliographicSearchClient, EuropePMCBackend, PubMedBackend
from .keywords import KeywordExtractor, fallback_keywords
from .pipeline import ReferenceSearch
from .translation import Translator

__all__ = [
    'BibliographicSearchClient',
    'EuropePMCBackend',
    'PubMedBackend',
    'KeywordExtractor',
    'fallback_keywords',
    'ReferenceSearch',
    'Translator',
]
