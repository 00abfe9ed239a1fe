"""
Bibliographic search against PubMed (NCBI E-utilities) or Europe PMC.

Both backends normalize into BibliographicArticle. Results are restricted to
the last three publication years plus the current one, capped at 10, and a
failure anywhere in this stage yields an empty list rather than an error.
"""
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple
import re

import requests
from Bio import Entrez

from app.config import Settings, get_settings
from app.logging_config import get_logger
from app.models import BibliographicArticle, StageResult
from app.retrieval.keywords import select_most_specific_keyword
from app.retrieval.pubmed_xml import PubMedXMLParser

logger = get_logger(__name__)

MAX_RESULTS = 10
YEAR_WINDOW = 3
# Second, single-keyword query when the combined query returns this many or fewer
OR_SEARCH_THRESHOLD = 3
ABSTRACT_PREVIEW_CHARS = 200

EUROPE_PMC_SEARCH_URL = "https://www.ebi.ac.uk/europepmc/webservices/rest/search"


def year_window(current_year: int) -> Tuple[int, int]:
    return current_year - YEAR_WINDOW, current_year


class BibliographicBackend:
    """One bibliographic source. fetch() may raise; the client absorbs failures."""

    name = "base"

    def fetch(self, terms: Sequence[str], min_year: int, max_year: int) -> List[BibliographicArticle]:
        raise NotImplementedError


class PubMedBackend(BibliographicBackend):
    """NCBI esearch + efetch through Biopython's Entrez module."""

    name = "pubmed"

    def __init__(self, email: str = "", api_key: str = "", max_results: int = MAX_RESULTS):
        # NCBI asks for a contact email; api key raises the rate limit to 10 req/sec
        if email:
            Entrez.email = email
        if api_key:
            Entrez.api_key = api_key
        Entrez.tool = "Salustia"
        Entrez.max_tries = 1
        self.max_results = max_results
        self.xml_parser = PubMedXMLParser()

    def search_ids(self, query: str, min_year: int, max_year: int) -> List[str]:
        handle = Entrez.esearch(
            db="pubmed",
            term=query,
            retmax=self.max_results,
            mindate=f"{min_year}/01/01",
            maxdate=f"{max_year}/12/31",
            datetype="pdat",
        )
        try:
            record = Entrez.read(handle)
        finally:
            handle.close()
        return list(record.get("IdList", []))

    def fetch_details(self, pmids: List[str]) -> List[BibliographicArticle]:
        handle = Entrez.efetch(db="pubmed", id=",".join(pmids), retmode="xml")
        try:
            xml_content = handle.read()
        finally:
            handle.close()
        return self.xml_parser.parse_articles(xml_content)

    def fetch(self, terms: Sequence[str], min_year: int, max_year: int) -> List[BibliographicArticle]:
        query = " AND ".join(terms)
        logger.info(f"Searching PubMed: {query} ({min_year}-{max_year})")
        pmids = self.search_ids(query, min_year, max_year)
        if not pmids:
            return []
        return self.fetch_details(pmids)


class EuropePMCBackend(BibliographicBackend):
    """Europe PMC REST search (JSON, core result type)."""

    name = "europepmc"

    def __init__(self, timeout: int = 30, max_results: int = MAX_RESULTS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.max_results = max_results
        self.session = session or requests.Session()

    @staticmethod
    def build_query(terms: Sequence[str], min_year: int, max_year: int) -> str:
        return " AND ".join(list(terms) + [f"PUB_YEAR:[{min_year} TO {max_year}]"])

    def fetch(self, terms: Sequence[str], min_year: int, max_year: int) -> List[BibliographicArticle]:
        query = self.build_query(terms, min_year, max_year)
        logger.info(f"Searching Europe PMC: {query}")
        response = self.session.get(
            EUROPE_PMC_SEARCH_URL,
            params={
                "query": query,
                "resultType": "core",
                "format": "json",
                "pageSize": self.max_results,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        results = response.json().get("resultList", {}).get("result", [])
        return [self.to_article(item) for item in results]

    @staticmethod
    def to_article(item: dict) -> BibliographicArticle:
        pmid = item.get("pmid")
        source = item.get("source", "MED")
        article_id = str(item.get("id") or pmid or "")
        if pmid:
            url = f"https://europepmc.org/article/MED/{pmid}"
        else:
            url = f"https://europepmc.org/article/{source}/{article_id}"

        abstract = item.get("abstractText")
        if abstract:
            abstract = re.sub(r"<[^>]+>", " ", abstract)
            abstract = " ".join(abstract.split())[:ABSTRACT_PREVIEW_CHARS] + "..."
        else:
            abstract = "Resumen no disponible"

        # journalInfo and journal may be null in the payload
        journal_info = item.get("journalInfo") or {}
        journal = item.get("journalTitle") or (journal_info.get("journal") or {}).get("title")
        year = str(item.get("pubYear") or "")

        return BibliographicArticle(
            id=article_id,
            pmid=str(pmid or article_id),
            title=(item.get("title") or "").strip(),
            authors=item.get("authorString") or "Autores no disponibles",
            abstract=abstract,
            journal=journal or "Revista no disponible",
            publication_year=int(year) if year.isdigit() else None,
            url=url,
            doi=item.get("doi") or None,
            source="europepmc",
        )


@dataclass(frozen=True)
class SearchOutcome:
    articles: Tuple[BibliographicArticle, ...] = ()
    search_type: str = "AND"
    selected_keyword: Optional[str] = None


class BibliographicSearchClient:
    """
    Two-phase keyword search over one backend.

    Phase 1 combines every keyword with AND. When that yields
    OR_SEARCH_THRESHOLD articles or fewer, phase 2 queries the single most
    specific keyword and appends articles not already present.
    """

    def __init__(
        self,
        backend: BibliographicBackend,
        max_results: int = MAX_RESULTS,
        today: Callable[[], date] = date.today,
    ):
        self.backend = backend
        self.max_results = max_results
        self.today = today

    def _in_window(self, articles: List[BibliographicArticle], min_year: int, max_year: int) -> List[BibliographicArticle]:
        kept = []
        for article in articles:
            year = article.publication_year
            if year is None or not (min_year <= year <= max_year):
                logger.warning(
                    f"Dropping {self.backend.name} article {article.pmid} outside {min_year}-{max_year} (year={year})"
                )
                continue
            kept.append(article)
        return kept

    def search_result(self, keywords: Sequence[str]) -> StageResult[SearchOutcome]:
        keywords = [k for k in keywords if k and k.strip()]
        if not keywords:
            return StageResult.degraded(SearchOutcome(), "no keywords")

        min_year, max_year = year_window(self.today().year)

        try:
            articles = self._in_window(self.backend.fetch(keywords, min_year, max_year), min_year, max_year)
        except Exception as e:
            logger.warning(f"{self.backend.name} search failed: {e}")
            return StageResult.degraded(SearchOutcome(), str(e))
        logger.info(f"Phase 1 (AND): {len(articles)} articles")

        if len(articles) > OR_SEARCH_THRESHOLD:
            return StageResult.ok(SearchOutcome(articles=tuple(articles[: self.max_results])))

        selected = select_most_specific_keyword(keywords)
        try:
            extra = self._in_window(self.backend.fetch([selected], min_year, max_year), min_year, max_year)
        except Exception as e:
            logger.warning(f"{self.backend.name} OR search on '{selected}' failed: {e}")
            return StageResult.degraded(SearchOutcome(articles=tuple(articles[: self.max_results])), str(e))

        seen = {a.pmid for a in articles}
        new_articles = []
        for article in extra:
            if article.pmid not in seen:
                seen.add(article.pmid)
                new_articles.append(article)
        logger.info(f"Phase 2 (OR on '{selected}'): {len(new_articles)} new articles")

        combined = (articles + new_articles)[: self.max_results]
        return StageResult.ok(
            SearchOutcome(articles=tuple(combined), search_type="OR", selected_keyword=selected)
        )

    def search(self, keywords: Sequence[str]) -> List[BibliographicArticle]:
        """Articles for the keywords, or [] on any failure."""
        return list(self.search_result(keywords).value.articles)


def build_backend(settings: Optional[Settings] = None) -> BibliographicBackend:
    settings = settings or get_settings()
    if settings.biblio_backend == "europepmc":
        return EuropePMCBackend(timeout=settings.http_timeout)
    return PubMedBackend(email=settings.ncbi_email, api_key=settings.ncbi_api_key)
