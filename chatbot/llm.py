import logging
from typing import List, Dict, Any, Optional

from openai import OpenAI

from chatbot.config import load_settings
from chatbot.models import ChatbotConfig

logger = logging.getLogger(__name__)


class LLM:
    """
    Wrapper for an OpenAI-compatible chat completions client.

    Each chatbot config carries its own API key and base URL, so one LLM is
    built per turn. Calls are bounded by a timeout and never retried: a failed
    call surfaces to the caller, which reports the turn as failed.
    """

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout_seconds: Optional[int] = None):
        if not api_key:
            raise ValueError("An API key is required to call the LLM")

        if timeout_seconds is None:
            timeout_seconds = load_settings().openai_timeout_seconds

        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout_seconds,
            max_retries=0
        )
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: ChatbotConfig) -> "LLM":
        return cls(config.api_key, config.base_url)

    def invoke(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None
    ):
        """
        Run one chat completion.

        Returns:
            The OpenAI ChatCompletion. Callers only look at choices[0].
        """
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"

        logger.debug(f"[LLM] model={model}, messages={len(messages)}, tools={len(tools or [])}")
        return self.client.chat.completions.create(**kwargs)


class Embedding:
    """OpenAI embeddings client used for RAG queries and document ingestion."""

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None, timeout_seconds: Optional[int] = None):
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required for embeddings")

        if timeout_seconds is None:
            timeout_seconds = load_settings().openai_timeout_seconds

        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout_seconds,
            max_retries=0
        )
        self.model = model

    def embed(self, text: str) -> List[float]:
        response = self.client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)
