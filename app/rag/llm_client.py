"""
Chat-completion client for the hosted router (OpenAI-compatible) with a local
Ollama option.

All model calls in the app go through LLMClient.chat so that tests can swap
in a fake with the same signature.
"""
from typing import List, Optional
import time

import ollama
from openai import OpenAI

from app.config import Settings, get_settings
from app.errors import UpstreamUnavailable
from app.logging_config import get_logger

logger = get_logger(__name__)


class LLMClient:
    """Sends chat messages to the configured model and returns the text reply."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.use_local = self.settings.use_local_llm
        self._client = None

    def _hosted(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                base_url=self.settings.llm_base_url,
                api_key=self.settings.llm_api_key or "missing",
                timeout=self.settings.http_timeout,
                max_retries=0,
            )
        return self._client

    def chat(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 512,
    ) -> str:
        """
        Run one chat completion.

        Raises:
            UpstreamUnavailable: transport error, non-2xx or empty completion
        """
        start = time.time()
        try:
            if self.use_local:
                client = ollama.Client(host=self.settings.ollama_base_url)
                response = client.chat(
                    model=self.settings.ollama_model,
                    messages=messages,
                    options={"temperature": temperature, "num_predict": max_tokens},
                )
                content = response["message"]["content"]
            else:
                completion = self._hosted().chat.completions.create(
                    model=model or self.settings.llm_model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
                content = completion.choices[0].message.content if completion.choices else None
        except Exception as e:
            raise UpstreamUnavailable("llm", str(e)) from e

        llm_time = (time.time() - start) * 1000
        logger.debug(f"LLM call ({model or 'default'}) took {llm_time:.0f}ms")

        if not content or not content.strip():
            raise UpstreamUnavailable("llm", "empty completion")
        return content.strip()
