"""Ollama client wrapper with error handling.

Failures are translated into the service error taxonomy here, at the
boundary, so nothing downstream has to interpret httpx exceptions.
"""
import httpx
from typing import Any, Dict, List, Optional, Protocol
import structlog

from docqa import config
from docqa.errors import (
    InternalError,
    ModelNotFoundError,
    ProviderTimeoutError,
    ValidationError,
)

logger = structlog.get_logger()


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


class GenerationProvider(Protocol):
    async def generate(self, model: str, prompt: str) -> str:
        ...


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.GENERATION_TIMEOUT)
            transport: Optional httpx transport, used to stub the server in tests
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self.transport,
        )

    async def _post(
        self, path: str, payload: Dict[str, Any], model: str, timeout: float
    ) -> Dict[str, Any]:
        try:
            async with self._client(timeout) as client:
                response = await client.post(path, json=payload)
        except httpx.TimeoutException as e:
            logger.error("ollama_timeout", path=path, model=model, timeout=timeout)
            raise ProviderTimeoutError(path, timeout) from e
        except httpx.HTTPError as e:
            logger.error(
                "ollama_connection_error",
                path=path,
                error=str(e),
                base_url=self.base_url,
            )
            raise InternalError(f"Ollama request to {path} failed: {e}") from e

        if response.is_error:
            error_text = _error_text(response)
            logger.error(
                "ollama_http_error",
                path=path,
                model=model,
                status_code=response.status_code,
                error=error_text,
            )
            if response.status_code == 404 or "not found" in error_text.lower():
                raise ModelNotFoundError(model)
            raise InternalError(
                f"Ollama returned {response.status_code} for {path}: {error_text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise InternalError(f"Ollama returned invalid JSON for {path}") from e

        if not isinstance(data, dict):
            raise InternalError(f"Unexpected Ollama response shape for {path}")

        return data

    async def embeddings(self, prompt: str, model: str = None) -> List[float]:
        """Generate an embedding vector for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            The embedding vector

        Raises:
            ValidationError: If the text is empty
            ModelNotFoundError: If the embedding model is not installed
            ProviderTimeoutError: If Ollama does not respond in time
            InternalError: On any other API failure
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Text is required for embedding generation", field="text")

        model = model or config.EMBEDDING_MODEL

        logger.debug("ollama_embedding_request", model=model, prompt_length=len(prompt))

        data = await self._post(
            "/api/embeddings",
            {"model": model, "prompt": prompt.strip()},
            model=model,
            timeout=config.EMBEDDING_TIMEOUT,
        )

        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise InternalError("Invalid embedding response from Ollama")

        try:
            vector = [float(x) for x in embedding]
        except (TypeError, ValueError) as e:
            raise InternalError("Invalid embedding response from Ollama") from e

        logger.debug("ollama_embedding_response", model=model, dimension=len(vector))

        return vector

    async def generate(self, model: str, prompt: str) -> str:
        """Run a non-streaming completion.

        Args:
            model: Model to use
            prompt: Full prompt text

        Returns:
            The generated text

        Raises:
            ModelNotFoundError: If the model is not installed
            ProviderTimeoutError: If Ollama does not respond in time
            InternalError: On any other API failure
        """
        model = model or config.CHAT_MODEL

        logger.info("ollama_generate_request", model=model, prompt_length=len(prompt))

        data = await self._post(
            "/api/generate",
            {"model": model, "prompt": prompt, "stream": False},
            model=model,
            timeout=self.timeout,
        )

        text = data.get("response")
        if not isinstance(text, str):
            raise InternalError("Invalid generation response from Ollama")

        logger.info("ollama_generate_response", model=model, response_length=len(text))

        return text

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            InternalError: If Ollama cannot be reached
        """
        try:
            async with self._client(5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise InternalError(f"Failed to list Ollama models: {e}") from e


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text


class OllamaEmbeddingProvider:
    """Embedding provider bound to one embedding model."""

    def __init__(self, client: OllamaClient, model: str = None):
        self.client = client
        self.model = model or config.EMBEDDING_MODEL

    async def embed(self, text: str) -> List[float]:
        return await self.client.embeddings(text, model=self.model)


class OllamaGenerationProvider:
    """Generation provider that forwards the caller's model choice."""

    def __init__(self, client: OllamaClient):
        self.client = client

    async def generate(self, model: str, prompt: str) -> str:
        return await self.client.generate(model, prompt)
