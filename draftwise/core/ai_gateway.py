"""AI gateway client: embeddings, completions and streamed completions.

Talks to a Cloudflare-style AI gateway fronting Workers AI models. Every
request carries two bearer tokens: one for the gateway, one for the provider.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from draftwise.core.config import Settings, get_settings
from draftwise.core.logging import get_logger, log_with_context
from draftwise.core.schemas_chat import PromptMessage
from draftwise.core.stream_decoder import decode_stream

logger = get_logger(__name__)


class CompletionTransportError(RuntimeError):
    """The model endpoint failed, timed out, or answered with an error status."""


class EmbeddingError(RuntimeError):
    """Embedding generation failed or returned an unusable payload."""


class AIGatewayClient:
    """Embedding and completion provider backed by the AI gateway."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._timeout = httpx.Timeout(self.settings.AI_REQUEST_TIMEOUT_SECONDS)

    def _url(self, model: str) -> str:
        s = self.settings
        return f"{s.AI_GATEWAY_BASE_URL}/{s.AI_GATEWAY_ACCOUNT_ID}/{s.AI_GATEWAY_SLUG}/workers-ai/{model}"

    def _headers(self, streaming: bool = False) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "cf-aig-authorization": f"Bearer {self.settings.AI_GATEWAY_TOKEN}",
            "Authorization": f"Bearer {self.settings.AI_WORKER_TOKEN}",
        }
        if streaming:
            headers["Accept"] = "text/event-stream"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _post_json(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._url(model)
        logger.debug(f"Gateway request to {url}")
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Gateway error for model {model}: status={e.response.status_code} body={e.response.text[:500]}"
            )
            raise CompletionTransportError(
                f"Gateway returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Gateway transport error for model {model}: {e!r}")
            raise CompletionTransportError(f"Gateway request failed: {type(e).__name__}") from e

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a list of texts, batching requests.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: If the provider fails or returns no vectors
        """
        if not texts:
            return []

        batch_size = self.settings.EMBEDDING_BATCH_SIZE
        vectors: list[list[float]] = []

        for start in range(0, len(texts), batch_size):
            batch = texts[start : start + batch_size]
            try:
                body = await self._post_json(self.settings.EMBEDDING_MODEL, {"text": batch})
            except CompletionTransportError as e:
                raise EmbeddingError(str(e)) from e

            result = body.get("result", body) if isinstance(body, dict) else None
            data = result.get("data") if isinstance(result, dict) else None
            if not isinstance(data, list):
                logger.error("Failed to process embedding response from gateway")
                raise EmbeddingError("Embedding generation failed")

            vectors.extend(data)

        log_with_context(
            logger,
            logging.INFO,
            f"Generated {len(vectors)} embeddings",
            model=self.settings.EMBEDDING_MODEL,
            count=len(vectors),
        )
        return vectors

    async def complete(self, messages: list[PromptMessage], max_tokens: int | None = None) -> str:
        """
        Run a non-streamed completion.

        Returns:
            The generated text ("" if the payload held none)

        Raises:
            CompletionTransportError: On transport failure, timeout or error status
        """
        payload = {
            "messages": [m.to_payload() for m in messages],
            "max_tokens": max_tokens or self.settings.CHAT_MAX_TOKENS,
            "temperature": self.settings.CHAT_TEMPERATURE,
        }
        body = await self._post_json(self.settings.CHAT_MODEL, payload)
        result = body.get("result", body) if isinstance(body, dict) else {}

        if isinstance(result, dict):
            if isinstance(result.get("response"), str):
                return result["response"]
            choices = result.get("choices") or []
            if choices and isinstance(choices[0], dict):
                content = (choices[0].get("message") or {}).get("content")
                if isinstance(content, str):
                    return content
        return ""

    async def stream(
        self,
        messages: list[PromptMessage],
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream a completion as text deltas.

        The response is closed when the consumer stops iterating or `cancel`
        is set; no deltas are yielded after that.

        Raises:
            CompletionTransportError: On transport failure, timeout or error status
        """
        url = self._url(self.settings.CHAT_MODEL)
        payload = {
            "messages": [m.to_payload() for m in messages],
            "stream": True,
            "max_tokens": self.settings.CHAT_MAX_TOKENS,
            "temperature": self.settings.CHAT_TEMPERATURE,
        }
        logger.debug(f"Initiating streaming gateway request to {url}")

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, json=payload, headers=self._headers(streaming=True)
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        logger.error(
                            f"Streaming request failed: status={response.status_code} "
                            f"body={response.text[:500]}"
                        )
                        raise CompletionTransportError(
                            f"Gateway returned status {response.status_code}"
                        )

                    async for delta in decode_stream(response.aiter_bytes(), cancel):
                        yield delta

            logger.debug("Stream ended")
        except httpx.HTTPError as e:
            logger.error(f"Stream transport error: {e!r}")
            raise CompletionTransportError(f"Stream interrupted: {type(e).__name__}") from e
