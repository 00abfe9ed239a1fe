"""
Tests for the two-phase bibliographic search and both backends.
"""
from dataclasses import replace
from datetime import date
import io

import pytest
import requests
from Bio import Entrez

from conftest import FakeBackend, make_article

from app.config import Settings
from app.retrieval.bibliographic import (
    BibliographicSearchClient,
    EuropePMCBackend,
    PubMedBackend,
    build_backend,
    year_window,
)
from test_pubmed_xml import EFETCH_XML

TODAY = date(2025, 6, 1)


def _client(backend, **kwargs):
    return BibliographicSearchClient(backend, today=lambda: TODAY, **kwargs)


def test_year_window():
    assert year_window(2025) == (2022, 2025)


def test_and_search_is_enough_above_threshold():
    backend = FakeBackend([[make_article(str(i), year=2024) for i in range(4)]])

    result = _client(backend).search_result(["hallux valgus", "osteotomy"])

    assert result.is_ok
    assert result.value.search_type == "AND"
    assert result.value.selected_keyword is None
    assert len(result.value.articles) == 4
    assert backend.calls == [(["hallux valgus", "osteotomy"], 2022, 2025)]


def test_or_search_on_most_specific_keyword():
    first = [make_article("1", year=2024), make_article("2", year=2023)]
    second = [make_article("2", year=2023), make_article("3", year=2025)]
    backend = FakeBackend([first, second])

    result = _client(backend).search_result(["treatment", "hallux valgus"])

    assert result.is_ok
    assert result.value.search_type == "OR"
    assert result.value.selected_keyword == "hallux valgus"
    assert [a.pmid for a in result.value.articles] == ["1", "2", "3"]
    assert backend.calls[1][0] == ["hallux valgus"]


def test_articles_outside_window_are_dropped():
    backend = FakeBackend([
        [make_article("old", year=2021), make_article("new", year=2025), make_article("future", year=2026)],
        [],
    ])

    assert [a.pmid for a in _client(backend).search(["knee"])] == ["new"]


def test_yearless_article_is_dropped():
    yearless = replace(make_article("nodate", year=2024), publication_year=None)
    backend = FakeBackend([[yearless, make_article("ok", year=2024)], []])

    assert [a.pmid for a in _client(backend).search(["knee"])] == ["ok"]


def test_results_capped_at_ten():
    backend = FakeBackend([[make_article(str(i), year=2024) for i in range(15)]])

    assert len(_client(backend).search(["fracture"])) == 10


def test_or_phase_respects_cap():
    first = [make_article(str(i), year=2024) for i in range(3)]
    second = [make_article(str(i), year=2024) for i in range(100, 112)]
    backend = FakeBackend([first, second])

    assert len(_client(backend).search(["ankle", "fracture"])) == 10


def test_no_keywords_skips_backend():
    backend = FakeBackend()

    result = _client(backend).search_result(["", "  "])

    assert result.is_degraded
    assert result.value.articles == ()
    assert backend.calls == []


def test_backend_failure_degrades_to_empty():
    backend = FakeBackend([requests.ConnectionError("network down")])

    result = _client(backend).search_result(["knee"])

    assert result.is_degraded
    assert result.value.articles == ()
    assert _client(FakeBackend([RuntimeError("boom")])).search(["knee"]) == []


def test_or_phase_failure_keeps_first_phase_articles():
    backend = FakeBackend([[make_article("1", year=2024)], requests.Timeout("slow")])

    result = _client(backend).search_result(["knee", "meniscus"])

    assert result.is_degraded
    assert [a.pmid for a in result.value.articles] == ["1"]


# Europe PMC

EUROPE_PMC_ITEM = {
    "id": "38000001",
    "source": "MED",
    "pmid": "38000001",
    "doi": "10.1000/jhs.2023.1",
    "title": "Management of distal radius fractures ",
    "authorString": "Ruiz A, Smith J.",
    "journalTitle": "J Hand Surg Am",
    "pubYear": "2023",
    "abstractText": "<h4>Background</h4>" + "Distal radius fractures are common. " * 10,
}


def test_europe_pmc_query():
    assert EuropePMCBackend.build_query(["knee", "meniscus"], 2022, 2025) == (
        "knee AND meniscus AND PUB_YEAR:[2022 TO 2025]"
    )


def test_europe_pmc_article_mapping():
    article = EuropePMCBackend.to_article(EUROPE_PMC_ITEM)

    assert article.pmid == "38000001"
    assert article.title == "Management of distal radius fractures"
    assert article.publication_year == 2023
    assert article.url == "https://europepmc.org/article/MED/38000001"
    assert article.source == "europepmc"
    assert article.abstract.startswith("Background Distal radius")
    assert article.abstract.endswith("...")
    assert len(article.abstract) == 203


def test_europe_pmc_defaults():
    article = EuropePMCBackend.to_article({"id": "PPR123", "source": "PPR", "title": "Preprint"})

    assert article.url == "https://europepmc.org/article/PPR/PPR123"
    assert article.abstract == "Resumen no disponible"
    assert article.journal == "Revista no disponible"
    assert article.authors == "Autores no disponibles"
    assert article.publication_year is None


@pytest.mark.parametrize("journal_info", [None, {"journal": None}])
def test_europe_pmc_null_journal_info(journal_info):
    item = dict(EUROPE_PMC_ITEM, journalInfo=journal_info)
    item.pop("journalTitle", None)

    article = EuropePMCBackend.to_article(item)

    assert article.journal == "Revista no disponible"
    assert article.title == "Management of distal radius fractures"


class _FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class _FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        return self.response


def test_europe_pmc_fetch():
    session = _FakeSession(_FakeResponse({"resultList": {"result": [EUROPE_PMC_ITEM]}}))
    backend = EuropePMCBackend(timeout=5, session=session)

    articles = backend.fetch(["fracture"], 2022, 2025)

    assert [a.pmid for a in articles] == ["38000001"]
    _, params, timeout = session.requests[0]
    assert params["query"] == "fracture AND PUB_YEAR:[2022 TO 2025]"
    assert params["resultType"] == "core"
    assert params["pageSize"] == 10
    assert timeout == 5


def test_europe_pmc_http_error_degrades_search():
    backend = EuropePMCBackend(session=_FakeSession(_FakeResponse({}, status=503)))

    result = _client(backend).search_result(["knee"])

    assert result.is_degraded
    assert result.value.articles == ()


# PubMed

def test_pubmed_fetch(monkeypatch):
    searches = []

    def fake_esearch(**kwargs):
        searches.append(kwargs)
        return io.BytesIO(b"")

    monkeypatch.setattr(Entrez, "esearch", fake_esearch)
    monkeypatch.setattr(Entrez, "read", lambda handle: {"IdList": ["38000001", "38000002"]})
    monkeypatch.setattr(Entrez, "efetch", lambda **kwargs: io.BytesIO(EFETCH_XML))

    articles = PubMedBackend(email="test@example.com").fetch(["distal radius", "fracture"], 2022, 2025)

    assert [a.pmid for a in articles] == ["38000001", "38000002"]
    assert searches[0]["term"] == "distal radius AND fracture"
    assert searches[0]["mindate"] == "2022/01/01"
    assert searches[0]["maxdate"] == "2025/12/31"


def test_pubmed_no_ids_skips_efetch(monkeypatch):
    monkeypatch.setattr(Entrez, "esearch", lambda **kwargs: io.BytesIO(b""))
    monkeypatch.setattr(Entrez, "read", lambda handle: {"IdList": []})

    def fail_efetch(**kwargs):
        raise AssertionError("efetch should not be called")

    monkeypatch.setattr(Entrez, "efetch", fail_efetch)

    assert PubMedBackend().fetch(["knee"], 2022, 2025) == []


def test_build_backend():
    assert isinstance(build_backend(Settings(biblio_backend="europepmc")), EuropePMCBackend)
    assert isinstance(build_backend(Settings(biblio_backend="pubmed")), PubMedBackend)


@pytest.mark.parametrize("keywords,expected", [
    (["knee"], "knee"),
    (["tratamiento"], "treatment"),
])
def test_single_keyword_or_phase(keywords, expected):
    backend = FakeBackend([[], []])

    result = _client(backend).search_result(keywords)

    assert result.value.selected_keyword == expected
    assert backend.calls[1][0] == [expected]
