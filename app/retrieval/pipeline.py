"""
Reference search: translate -> extract keywords -> bibliographic search.

Every stage degrades instead of raising, so run() always returns a
SearchContext (possibly with no articles).
"""
from typing import Optional

from app.logging_config import get_logger
from app.models import SearchContext, StageResult
from app.retrieval.bibliographic import BibliographicSearchClient
from app.retrieval.keywords import KeywordExtractor
from app.retrieval.translation import Translator

logger = get_logger(__name__)


class ReferenceSearch:
    """Builds the SearchContext for one question."""

    def __init__(
        self,
        translator: Translator,
        extractor: KeywordExtractor,
        client: BibliographicSearchClient,
    ):
        self.translator = translator
        self.extractor = extractor
        self.client = client

    def run(self, prompt: str) -> StageResult[SearchContext]:
        errors = []

        translated = self.translator.translate_result(prompt)
        if translated.is_degraded:
            errors.append(f"translation: {translated.error}")

        keywords = self.extractor.extract_result(translated.value)
        if keywords.is_degraded:
            errors.append(f"keywords: {keywords.error}")

        search = self.client.search_result(keywords.value)
        if search.is_degraded:
            errors.append(f"search: {search.error}")

        outcome = search.value
        context = SearchContext(
            original_query=prompt,
            translated_query=translated.value,
            keywords=tuple(keywords.value),
            articles=outcome.articles,
            search_type=outcome.search_type,
            selected_keyword=outcome.selected_keyword,
        )
        logger.info(
            f"Reference search: {len(context.articles)} articles "
            f"(type={context.search_type}, keywords={list(context.keywords)})"
        )

        if errors:
            return StageResult.degraded(context, "; ".join(errors))
        return StageResult.ok(context)


def build_reference_search(llm, client: BibliographicSearchClient, auxiliary_model: Optional[str] = None) -> ReferenceSearch:
    return ReferenceSearch(
        translator=Translator(llm, model=auxiliary_model),
        extractor=KeywordExtractor(llm, model=auxiliary_model),
        client=client,
    )
