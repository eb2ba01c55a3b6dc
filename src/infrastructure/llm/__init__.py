"""
LLM Client Infrastructure
==========================

Wrappers for the embedding and chat completion services providing a clean
interface for LLM operations.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the application layer depends on
IEmbeddingClient / ICompletionClient, not on the OpenAI SDK.

Every call is bounded by a timeout; timeouts and SDK errors are raised as
EmbeddingServiceException / CompletionServiceException.
"""

import asyncio
import hashlib
import re
import time
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from src.config import settings
from src.core import (
    CompletionServiceException,
    ConfigurationException,
    EmbeddingServiceException,
)
from src.shared.infrastructure.grafana import get_grafana_exporter
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class EmbeddingResult:
    """Result of an embedding generation."""

    def __init__(self, embedding: List[float], model: str):
        self.embedding = embedding
        self.model = model
        self.dimension = len(embedding)


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class IEmbeddingClient(ABC):
    """Interface for the embedding service (text -> fixed-length vector)."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding for text."""


class ICompletionClient(ABC):
    """Interface for the generative model (system + user prompt -> text)."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""


class OpenAILLMClient(IEmbeddingClient, ICompletionClient):
    """
    OpenAI client implementation for embeddings and GPT chat models.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        embedding_timeout: Optional[float] = None,
        completion_timeout: Optional[float] = None,
    ):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=base_url or settings.openai_base_url,
            max_retries=settings.llm_max_retries,
        )
        self._model = settings.llm_model
        self._embedding_model = settings.embedding_model
        self._embedding_timeout = embedding_timeout or settings.embedding_timeout_seconds
        self._completion_timeout = completion_timeout or settings.completion_timeout_seconds

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Generate embedding for text using the OpenAI embedding model.

        Args:
            text: Text to embed

        Returns:
            EmbeddingResult with embedding vector

        Raises:
            EmbeddingServiceException: On SDK error or timeout
        """
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(
                    model=self._embedding_model,
                    input=text
                ),
                timeout=self._embedding_timeout
            )
        except asyncio.TimeoutError:
            raise EmbeddingServiceException(
                f"Embedding request timed out after {self._embedding_timeout}s"
            )
        except OpenAIError as e:
            raise EmbeddingServiceException(f"Embedding generation failed: {str(e)}")

        return EmbeddingResult(
            embedding=list(response.data[0].embedding),
            model=self._embedding_model
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion using OpenAI GPT.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics

        Returns:
            ChatCompletionResult with generated text

        Raises:
            CompletionServiceException: On SDK error or timeout
        """
        start_time = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens
                ),
                timeout=self._completion_timeout
            )
        except asyncio.TimeoutError:
            raise CompletionServiceException(
                f"Chat completion timed out after {self._completion_timeout}s"
            )
        except OpenAIError as e:
            raise CompletionServiceException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0

        result = ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms
        )

        # Export metrics to Grafana
        exporter = get_grafana_exporter()
        if exporter.is_enabled():
            await exporter.export_llm_metrics(
                model=self._model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                latency_ms=latency_ms,
                operation=operation
            )

        return result

    async def close(self) -> None:
        await self._client.close()


_SOURCE_HEADER = re.compile(r"\[Source (\d+):")


class MockLLMClient(IEmbeddingClient, ICompletionClient):
    """
    Mock LLM client for local development and tests.

    Returns predictable responses without calling external APIs:
    embeddings are seeded from the SHA-256 of the text so identical text
    always maps to the identical unit vector, and completions cite every
    source block found in the prompt.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension or settings.embedding_dimension

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Return a deterministic pseudo-embedding for text."""
        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16)
        rng = np.random.default_rng(seed)
        vector = rng.standard_normal(self.dimension)
        vector = vector / np.linalg.norm(vector)
        return EmbeddingResult(embedding=vector.tolist(), model="mock-embedding")

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Return a grounded-looking answer that cites every supplied source."""
        prompt = "\n".join(str(m.get("content", "")) for m in messages)
        indices = sorted({int(n) for n in _SOURCE_HEADER.findall(prompt)})

        if indices:
            citations = " ".join(f"[Source {i}]" for i in indices)
            content = (
                "Based on the provided documentation, the relevant steps are "
                f"described in the cited sources {citations}."
            )
        else:
            content = "I don't have information about that in the provided documentation."

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=len(prompt) // 4,
            completion_tokens=len(content) // 4,
            latency_ms=0
        )


def create_llm_client() -> OpenAILLMClient | MockLLMClient:
    """Build the LLM client selected by settings."""
    if settings.mock_llm:
        logger.info("Using mock LLM client")
        return MockLLMClient()
    return OpenAILLMClient()


__all__ = [
    "EmbeddingResult",
    "ChatCompletionResult",
    "IEmbeddingClient",
    "ICompletionClient",
    "OpenAILLMClient",
    "MockLLMClient",
    "create_llm_client",
]
