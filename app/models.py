"""
Core data models for the Salustia assistant.

These models represent the primary data structures passed between
reference search, generation, rendering and usage accounting.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BibliographicArticle:
    """
    A single article returned by a bibliographic backend.

    Built once from a search response and never mutated. Both backends
    (PubMed XML and Europe PMC JSON) normalize into this shape.
    """
    id: str
    pmid: str  # source id (PMID for PubMed, Europe PMC id otherwise)
    title: str
    authors: str
    abstract: str
    journal: str
    publication_year: Optional[int]
    url: str
    doi: Optional[str] = None
    source: str = "pubmed"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON persistence."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BibliographicArticle":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class SearchContext:
    """
    Translated query, extracted keywords and retrieved articles for one question.

    search_type is "AND" when the combined keyword query was enough and "OR"
    when a second query on the most specific keyword was needed.
    """
    original_query: str
    translated_query: str
    keywords: Tuple[str, ...]
    articles: Tuple[BibliographicArticle, ...] = ()
    search_type: str = "AND"
    selected_keyword: Optional[str] = None

    def articles_snapshot(self) -> List[Dict[str, Any]]:
        return [a.to_dict() for a in self.articles]


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """
    Outcome of a pipeline stage.

    ok:       the stage produced its real value
    degraded: the stage failed and value holds the fallback
    fatal:    the stage failed and there is no usable value
    """
    status: str
    value: Optional[T] = None
    error: Optional[str] = None

    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(status=cls.OK, value=value)

    @classmethod
    def degraded(cls, value: T, error: str) -> "StageResult[T]":
        return cls(status=cls.DEGRADED, value=value, error=error)

    @classmethod
    def fatal(cls, error: str) -> "StageResult[T]":
        return cls(status=cls.FATAL, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status == self.OK

    @property
    def is_degraded(self) -> bool:
        return self.status == self.DEGRADED

    @property
    def is_fatal(self) -> bool:
        return self.status == self.FATAL


@dataclass(frozen=True)
class UsageCounters:
    """Queries counted inside the current day and month windows."""
    user_id: str
    daily_count: int
    monthly_count: int


@dataclass
class Enrichment:
    """Best-effort additions produced after the primary answer."""
    summary: Optional[str] = None
    summary_html: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


@dataclass
class AskResult:
    """Everything produced by one turn of the conversation."""
    prompt: str
    response: str
    rendered_html: str
    term_references: List[Dict[str, str]] = field(default_factory=list)
    search_context: Optional[SearchContext] = None
    search_status: str = StageResult.OK
    query_id: Optional[str] = None
    user_id: Optional[str] = None
    persisted: bool = False
    generation_time_ms: float = 0.0
