"""
XML parser for PubMed efetch responses.
Extracts the fields of a BibliographicArticle from PubmedArticleSet XML.
"""
from typing import List, Optional
from lxml import etree
import logging
import re

from app.models import BibliographicArticle

logger = logging.getLogger(__name__)

PUBMED_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"
MAX_AUTHORS = 3


class PubMedXMLParser:
    """Parses PubmedArticleSet XML into BibliographicArticle records."""

    def __init__(self):
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=False)

    def parse_articles(self, xml_content: bytes) -> List[BibliographicArticle]:
        """
        Parse an efetch response.

        Args:
            xml_content: Raw XML bytes (or str) from Entrez.efetch

        Returns:
            Articles in document order; entries without a PMID or title are skipped.

        Raises:
            etree.XMLSyntaxError: the document is not well-formed
        """
        if isinstance(xml_content, str):
            xml_content = xml_content.encode("utf-8")
        root = etree.fromstring(xml_content, parser=self._parser)

        articles = []
        for node in root.iter("PubmedArticle"):
            article = self.parse_article(node)
            if article is not None:
                articles.append(article)
        return articles

    def parse_article(self, node) -> Optional[BibliographicArticle]:
        pmid = self._get_text_content(node.find(".//MedlineCitation/PMID"))
        title = self._get_text_content(node.find(".//ArticleTitle"))
        if not pmid or not title:
            logger.debug("Skipping PubmedArticle without PMID or title")
            return None

        return BibliographicArticle(
            id=pmid,
            pmid=pmid,
            title=title,
            authors=self._extract_authors(node) or "Authors not available",
            abstract=self._get_text_content(node.find(".//Abstract/AbstractText")) or "No abstract available",
            journal=self._get_text_content(node.find(".//Journal/Title")) or "Unknown journal",
            publication_year=self._extract_year(node),
            url=PUBMED_URL.format(pmid=pmid),
            doi=self._extract_doi(node),
            source="pubmed",
        )

    def _extract_year(self, node) -> Optional[int]:
        """Publication year from the journal issue PubDate, then the electronic ArticleDate."""
        for path in (".//JournalIssue/PubDate/Year", ".//ArticleDate/Year"):
            text = self._get_text_content(node.find(path))
            if text.isdigit():
                return int(text)

        # e.g. <MedlineDate>2021 Nov-Dec</MedlineDate>; DateCompleted/DateRevised are not publication dates
        medline_date = self._get_text_content(node.find(".//JournalIssue/PubDate/MedlineDate"))
        match = re.search(r"\b(\d{4})\b", medline_date)
        return int(match.group(1)) if match else None

    def _extract_doi(self, node) -> Optional[str]:
        for elem in node.iter("ELocationID"):
            if elem.get("EIdType") == "doi":
                return self._get_text_content(elem) or None
        for elem in node.iter("ArticleId"):
            if elem.get("IdType") == "doi":
                return self._get_text_content(elem) or None
        return None

    def _extract_authors(self, node) -> str:
        """First three authors as "ForeName LastName", comma separated."""
        names = []
        for author in node.findall(".//AuthorList/Author")[:MAX_AUTHORS]:
            collective = self._get_text_content(author.find("CollectiveName"))
            if collective:
                names.append(collective)
                continue
            first = self._get_text_content(author.find("ForeName"))
            last = self._get_text_content(author.find("LastName"))
            name = f"{first} {last}".strip()
            if name:
                names.append(name)
        return ", ".join(names)

    def _get_text_content(self, element) -> str:
        """
        Extract all text from an element, including nested elements.
        Titles and abstracts often carry inline markup like <i> or <sup>.
        """
        if element is None:
            return ""
        text = "".join(element.itertext())
        return " ".join(text.split())
