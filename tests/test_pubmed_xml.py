"""
Tests for PubMedXMLParser against hand-written efetch documents.
"""
import pytest
from lxml import etree

from app.retrieval.pubmed_xml import PubMedXMLParser

EFETCH_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000001</PMID>
      <Article>
        <Journal>
          <JournalIssue>
            <PubDate><Year>2023</Year><Month>May</Month></PubDate>
          </JournalIssue>
          <Title>The Journal of Hand Surgery</Title>
        </Journal>
        <ArticleTitle>Management of <i>distal radius</i> fractures</ArticleTitle>
        <ELocationID EIdType="pii">S0001</ELocationID>
        <ELocationID EIdType="doi">10.1000/jhs.2023.1</ELocationID>
        <Abstract>
          <AbstractText Label="BACKGROUND">Distal radius fractures are common.</AbstractText>
          <AbstractText Label="METHODS">Second section.</AbstractText>
        </Abstract>
        <AuthorList>
          <Author><LastName>Ruiz</LastName><ForeName>Ana</ForeName></Author>
          <Author><LastName>Smith</LastName><ForeName>John</ForeName></Author>
          <Author><CollectiveName>Hand Study Group</CollectiveName></Author>
          <Author><LastName>Fourth</LastName><ForeName>Not</ForeName></Author>
        </AuthorList>
      </Article>
    </MedlineCitation>
  </PubmedArticle>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000002</PMID>
      <DateCompleted><Year>2023</Year><Month>01</Month><Day>10</Day></DateCompleted>
      <DateRevised><Year>2025</Year><Month>03</Month><Day>02</Day></DateRevised>
      <Article>
        <Journal>
          <JournalIssue>
            <PubDate><MedlineDate>2022 Nov-Dec</MedlineDate></PubDate>
          </JournalIssue>
        </Journal>
        <ArticleTitle>Scarf osteotomy outcomes</ArticleTitle>
      </Article>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList>
        <ArticleId IdType="pubmed">38000002</ArticleId>
        <ArticleId IdType="doi">10.1000/foot.2022.9</ArticleId>
      </ArticleIdList>
    </PubmedData>
  </PubmedArticle>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">38000003</PMID>
      <Article><Journal><Title>No title here</Title></Journal></Article>
    </MedlineCitation>
  </PubmedArticle>
</PubmedArticleSet>
"""


@pytest.fixture
def articles():
    return PubMedXMLParser().parse_articles(EFETCH_XML)


def test_skips_articles_without_title(articles):
    assert [a.pmid for a in articles] == ["38000001", "38000002"]


def test_full_record(articles):
    article = articles[0]

    assert article.id == "38000001"
    assert article.title == "Management of distal radius fractures"
    assert article.journal == "The Journal of Hand Surgery"
    assert article.publication_year == 2023
    assert article.abstract == "Distal radius fractures are common."
    assert article.doi == "10.1000/jhs.2023.1"
    assert article.url == "https://pubmed.ncbi.nlm.nih.gov/38000001/"
    assert article.source == "pubmed"


def test_authors_limited_to_three(articles):
    assert articles[0].authors == "Ana Ruiz, John Smith, Hand Study Group"


def test_defaults_for_missing_fields(articles):
    article = articles[1]

    assert article.authors == "Authors not available"
    assert article.abstract == "No abstract available"
    assert article.journal == "Unknown journal"


def test_medline_date_year_and_article_id_doi(articles):
    article = articles[1]

    assert article.publication_year == 2022
    assert article.doi == "10.1000/foot.2022.9"


def test_accepts_str_input():
    articles = PubMedXMLParser().parse_articles(EFETCH_XML.decode("utf-8").split("\n", 1)[1])
    assert len(articles) == 2


def test_empty_set():
    assert PubMedXMLParser().parse_articles(b"<PubmedArticleSet></PubmedArticleSet>") == []


def test_malformed_xml_raises():
    with pytest.raises(etree.XMLSyntaxError):
        PubMedXMLParser().parse_articles(b"<PubmedArticleSet><PubmedArticle>")


def test_medline_date_wins_over_completion_and_revision_dates():
    xml = b"""<PubmedArticleSet><PubmedArticle><MedlineCitation>
      <PMID Version="1">31000001</PMID>
      <DateCompleted><Year>2020</Year></DateCompleted>
      <DateRevised><Year>2025</Year></DateRevised>
      <Article>
        <Journal><JournalIssue><PubDate><MedlineDate>2019 Nov-Dec</MedlineDate></PubDate></JournalIssue></Journal>
        <ArticleTitle>Ankle sprain rehabilitation</ArticleTitle>
      </Article>
    </MedlineCitation></PubmedArticle></PubmedArticleSet>"""

    assert PubMedXMLParser().parse_articles(xml)[0].publication_year == 2019


def test_only_completion_date_gives_no_year():
    xml = b"""<PubmedArticleSet><PubmedArticle><MedlineCitation>
      <PMID Version="1">31000002</PMID>
      <DateCompleted><Year>2020</Year></DateCompleted>
      <Article><ArticleTitle>Undated record</ArticleTitle></Article>
    </MedlineCitation></PubmedArticle></PubmedArticleSet>"""

    assert PubMedXMLParser().parse_articles(xml)[0].publication_year is None
