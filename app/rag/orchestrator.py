"""
Conversation orchestration for one user turn.

Order per question:
    validate -> quota -> optimistic transcript append -> reference search
    -> LLM answer -> persist -> refresh counters -> render

Only validation, the quota check and the primary LLM call can fail the
request. Reference search degrades to an empty context, persistence failures
are logged, and the summary/suggestion enrichment runs afterwards with its
failures isolated.
"""
from typing import List, Optional
import asyncio
import time

from app.config import Settings, get_settings
from app.db.repository import QueryRepository
from app.errors import PersistenceFailure, UpstreamUnavailable, ValidationError
from app.logging_config import get_logger, log_security_event
from app.models import AskResult, Enrichment, SearchContext, StageResult
from app.rag.conversation_manager import ConversationManager
from app.rag.generation import generate_follow_up_suggestions, generate_response, generate_summary
from app.rendering import render_answer, render_summary, sanitize_prompt
from app.retrieval.pipeline import ReferenceSearch
from app.usage.guest import GuestThrottle
from app.usage.local_store import InMemoryLocalStore, LocalStore
from app.usage.quota import QuotaLedger

logger = get_logger(__name__)


class Orchestrator:
    """Runs a question through search, generation, persistence and rendering."""

    def __init__(
        self,
        llm,
        queries: QueryRepository,
        ledger: QuotaLedger,
        reference_search: Optional[ReferenceSearch] = None,
        settings: Optional[Settings] = None,
        store: Optional[LocalStore] = None,
    ):
        self.llm = llm
        self.queries = queries
        self.ledger = ledger
        self.reference_search = reference_search
        self.settings = settings or get_settings()
        self.store = store or InMemoryLocalStore()

    def validate(self, prompt: str) -> str:
        """Reject empty or oversized prompts and strip script content. Returns the cleaned prompt."""
        stripped = (prompt or "").strip()
        if not stripped:
            raise ValidationError("La consulta no puede estar vacía.")
        if len(stripped) > self.settings.max_prompt_length:
            log_security_event("prompt_too_long", {"length": len(stripped)})
            raise ValidationError(
                f"La consulta supera el máximo de {self.settings.max_prompt_length} caracteres."
            )

        cleaned = sanitize_prompt(stripped)
        if cleaned != stripped:
            log_security_event("prompt_sanitized", {"original_length": len(stripped), "cleaned_length": len(cleaned)})
        if not cleaned:
            raise ValidationError("La consulta no contiene texto válido.")
        return cleaned

    async def _search(self, prompt: str) -> StageResult[SearchContext]:
        try:
            return await asyncio.to_thread(self.reference_search.run, prompt)
        except Exception as e:
            logger.warning(f"Reference search failed (non-fatal): {e}", exc_info=True)
            return StageResult.degraded(SearchContext(original_query=prompt, translated_query=prompt, keywords=()), str(e))

    async def ask(
        self,
        prompt: str,
        user_id: Optional[str] = None,
        role: Optional[str] = "free",
        use_search: bool = True,
        store: Optional[LocalStore] = None,
    ) -> AskResult:
        """
        Answer one question.

        Args:
            prompt: clinical question in Spanish
            user_id: authenticated user, or None for a guest
            role: user's role, drives quota ceilings
            use_search: build a PubMed context before calling the model
            store: client-local state (guest counter, transcript); defaults to the shared store

        Raises:
            ValidationError, QuotaExceeded, UpstreamUnavailable (primary LLM only)
        """
        start = time.time()
        store = store or self.store
        cleaned = self.validate(prompt)

        throttle = None
        if user_id:
            await asyncio.to_thread(self.ledger.check_and_reserve, user_id, role)
        else:
            throttle = GuestThrottle(store, limit=self.settings.guest_query_limit)
            throttle.check()

        transcript = ConversationManager(store)
        history = transcript.history_for_prompt(user_id)
        transcript.add_message(user_id, "user", cleaned)

        search_context = None
        search_status = StageResult.OK
        if use_search and self.reference_search is not None:
            stage = await self._search(cleaned)
            search_context = stage.value
            search_status = stage.status
            if stage.is_degraded:
                logger.warning(f"Reference search degraded: {stage.error}")
        articles = search_context.articles if search_context else ()

        try:
            response = await asyncio.to_thread(generate_response, self.llm, cleaned, articles, history)
        except UpstreamUnavailable:
            # Retract the optimistic user message
            transcript.delete_last_message(user_id)
            raise

        query_id = None
        persisted = False
        if user_id:
            try:
                query_id = await asyncio.to_thread(
                    self.queries.insert_query, user_id, cleaned, response, search_context
                )
                persisted = True
            except PersistenceFailure as e:
                logger.error(f"Could not store query for {user_id}: {e}")
            if persisted:
                await asyncio.to_thread(self.ledger.refresh_counters, user_id)
        else:
            throttle.record()

        rendered = render_answer(response, articles)
        transcript.add_message(user_id, "assistant", response, query_id=query_id)

        generation_time_ms = (time.time() - start) * 1000
        logger.info(
            f"Answered question for {user_id or 'guest'} in {generation_time_ms:.0f}ms "
            f"({len(articles)} articles, persisted={persisted})"
        )
        return AskResult(
            prompt=cleaned,
            response=response,
            rendered_html=rendered.html,
            term_references=rendered.references_as_dicts(),
            search_context=search_context,
            search_status=search_status,
            query_id=query_id,
            user_id=user_id,
            persisted=persisted,
            generation_time_ms=generation_time_ms,
        )

    async def _summary(self, result: AskResult) -> Optional[str]:
        if not result.query_id:
            return None
        try:
            summary = await asyncio.to_thread(
                generate_summary, self.llm, result.prompt, result.response, self.settings.auxiliary_model
            )
        except Exception as e:
            logger.warning(f"Summary generation failed for query {result.query_id}: {e}")
            return None

        try:
            stored = await asyncio.to_thread(self.queries.update_summary, result.query_id, summary, result.user_id)
            if not stored:
                logger.info(f"Summary for query {result.query_id} not stored (missing or already set)")
        except PersistenceFailure as e:
            logger.error(f"Could not store summary for query {result.query_id}: {e}")
        return summary

    async def _suggestions(self, result: AskResult) -> List[str]:
        try:
            return await asyncio.to_thread(
                generate_follow_up_suggestions, self.llm, result.response, self.settings.auxiliary_model
            )
        except Exception as e:
            logger.warning(f"Follow-up suggestions failed: {e}")
            return []

    async def enrich(self, result: AskResult) -> Enrichment:
        """Summary and follow-up suggestions, concurrently; either may come back empty."""
        summary, suggestions = await asyncio.gather(self._summary(result), self._suggestions(result))
        return Enrichment(
            summary=summary,
            summary_html=render_summary(summary) if summary else None,
            suggestions=suggestions,
        )
