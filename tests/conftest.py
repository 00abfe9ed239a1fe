"""
Shared fixtures: in-memory database, scripted LLM and bibliographic backend.
"""
import os

# Must be set before anything imports app.config / app.db.database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ["SECURITY_LOG_FILE"] = ""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.db import models  # noqa: F401  (register tables)
from app.errors import UpstreamUnavailable
from app.models import BibliographicArticle
from app.rag.generation import SUMMARY_SYSTEM_PROMPT, SYSTEM_PROMPT
from app.retrieval.bibliographic import BibliographicBackend
from app.retrieval.keywords import KEYWORD_PROMPT
from app.retrieval.translation import TRANSLATION_PROMPT

CURRENT_YEAR = date.today().year

ANSWER_WITH_CITATION = (
    'El tratamiento depende del desplazamiento. Según "Management of distal radius fractures" (2021), '
    "la inmovilización es adecuada en fracturas estables.\n\n"
    "Referencias:\n- Management of distal radius fractures (2021)"
)


class FakeLLM:
    """
    Stand-in for LLMClient. Replies are picked by the kind of call, detected
    from the system prompt: translation, keywords, answer, summary, suggestions.
    """

    def __init__(self, replies=None, fail=()):
        self.replies = {
            "translation": "management of distal radius fracture",
            "keywords": "distal radius fracture, management",
            "answer": "La fractura de radio distal se trata según el desplazamiento.",
            "summary": "**DIAGNÓSTICO PRINCIPAL:** fractura de radio distal",
            "suggestions": "1. ¿Cuándo operar?\n2. ¿Cuánto dura la inmovilización?\n3. ¿Qué rehabilitación?",
        }
        self.replies.update(replies or {})
        self.fail = set(fail)
        self.calls = []

    @staticmethod
    def kind_of(messages):
        system = messages[0]["content"] if messages and messages[0]["role"] == "system" else None
        if system == TRANSLATION_PROMPT:
            return "translation"
        if system == KEYWORD_PROMPT:
            return "keywords"
        if system == SYSTEM_PROMPT:
            return "answer"
        if system == SUMMARY_SYSTEM_PROMPT:
            return "summary"
        return "suggestions"

    def chat(self, messages, model=None, temperature=0.2, max_tokens=512):
        kind = self.kind_of(messages)
        self.calls.append({"kind": kind, "messages": messages, "model": model})
        if kind in self.fail:
            raise UpstreamUnavailable("llm", f"{kind} failed")
        return self.replies[kind]

    def kinds(self):
        return [c["kind"] for c in self.calls]


class FakeBackend(BibliographicBackend):
    """Returns queued results in order; an Exception in the queue is raised."""

    name = "fake"

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls = []

    def fetch(self, terms, min_year, max_year):
        self.calls.append((list(terms), min_year, max_year))
        result = self.results.pop(0) if self.results else []
        if isinstance(result, Exception):
            raise result
        return list(result)


def make_article(pmid="12345", title="Management of distal radius fractures", year=None, source="pubmed", url=None):
    return BibliographicArticle(
        id=pmid,
        pmid=pmid,
        title=title,
        authors="Ana Ruiz, John Smith",
        abstract="Conservative and surgical options.",
        journal="J Hand Surg",
        publication_year=CURRENT_YEAR if year is None else year,
        url=url or f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
        source=source,
    )


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def fake_llm():
    return FakeLLM()
