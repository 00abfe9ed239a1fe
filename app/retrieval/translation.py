"""
Spanish -> English translation of clinical questions.

Best effort: the original text is returned whenever the model is unavailable
or returns nothing. No retries.
"""
from typing import Optional

from app.logging_config import get_logger
from app.models import StageResult

logger = get_logger(__name__)

TRANSLATION_PROMPT = (
    "You are a professional medical translator. Translate the following Spanish "
    "medical text to English. Only return the English translation, nothing else."
)


class Translator:
    """Wraps an LLM client with the translation prompt."""

    def __init__(self, llm, model: Optional[str] = None):
        self.llm = llm
        self.model = model

    def translate_result(self, text: str) -> StageResult[str]:
        if not text or not text.strip():
            return StageResult.ok(text)

        messages = [
            {"role": "system", "content": TRANSLATION_PROMPT},
            {"role": "user", "content": text},
        ]
        try:
            translated = self.llm.chat(messages, model=self.model, temperature=0.1, max_tokens=200)
        except Exception as e:
            logger.warning(f"Translation failed, using original text: {e}")
            return StageResult.degraded(text, str(e))

        translated = (translated or "").strip()
        if not translated:
            logger.warning("Translation returned empty text, using original")
            return StageResult.degraded(text, "empty translation")

        logger.info(f"Translated query: {translated}")
        return StageResult.ok(translated)

    def translate(self, text: str) -> str:
        """Return the English text, or the input unchanged on any failure."""
        return self.translate_result(text).value
