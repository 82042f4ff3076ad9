import requests
from typing import Iterator, Optional, Dict, Any, Type
from abc import ABC, abstractmethod

from rag_relay.core.config import Settings, settings as default_settings
from rag_relay.core.logging import get_logger
from rag_relay.llm.decoder import ChunkDecoder, AnthropicChunkDecoder, OllamaChunkDecoder
from rag_relay.llm.exceptions import GenerationError

logger = get_logger(__name__)


class LLMClient(ABC):
    """
    Abstract base class for streaming LLM clients.

    A client only moves bytes: `stream` yields the raw lines of the service's
    response body in arrival order and leaves their interpretation to
    `decoder_class`.
    """

    client_type: str
    decoder_class: Type[ChunkDecoder]

    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[requests.Session] = None
    ):
        self.config = config or default_settings
        self.session = session or requests.Session()
        self.model = self.config.MODEL_ID
        self.timeout = (self.config.LLM_CONNECT_TIMEOUT, self.config.LLM_READ_TIMEOUT)

    @abstractmethod
    def _endpoint(self) -> str:
        pass

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def _build_payload(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        pass

    def _error_message(self, response: requests.Response) -> str:
        return f"Model service returned HTTP {response.status_code}"

    def stream(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None
    ) -> Iterator[bytes]:
        """
        Open a generation stream.

        Args:
            prompt: Full model input
            max_tokens: Generation limit (> 0), defaults to settings
            temperature: Sampling temperature in [0, 1], defaults to settings

        Returns:
            Lazy iterator of raw response lines; the request is sent on the
            first pull

        Raises:
            ValueError: If max_tokens or temperature are out of range
            GenerationError: While iterating, if the service cannot be
                reached, rejects the request, or the stream breaks
        """
        max_tokens = self.config.MAX_TOKENS if max_tokens is None else max_tokens
        temperature = self.config.TEMPERATURE if temperature is None else temperature
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")
        if not 0.0 <= temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {temperature}")

        payload = self._build_payload(prompt, max_tokens, temperature)
        return self._iter_chunks(payload)

    def _iter_chunks(self, payload: Dict[str, Any]) -> Iterator[bytes]:
        logger.debug(f"Streaming response with model: {self.model}")
        try:
            response = self.session.post(
                self._endpoint(),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
                stream=True
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error opening model stream: {e}")
            raise GenerationError(f"Could not reach the model service: {e}") from e

        with response:
            if not response.ok:
                message = self._error_message(response)
                logger.error(f"Model service rejected the request: {message}")
                raise GenerationError(message)

            try:
                for line in response.iter_lines():
                    # blank lines are keep-alives / event separators
                    if line:
                        yield line
            except requests.exceptions.RequestException as e:
                logger.error(f"Model stream interrupted: {e}")
                raise GenerationError(f"The model stream was interrupted: {e}") from e

        logger.debug("Streaming response completed")

    def get_model_info(self) -> Dict[str, Any]:
        """Describe the configured model"""
        return {"type": self.client_type, "model": self.model}


class AnthropicClient(LLMClient):
    """Anthropic Messages API client (server-sent event stream)"""

    client_type = "anthropic"
    decoder_class = AnthropicChunkDecoder

    def __init__(self, config: Optional[Settings] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self.base_url = self.config.ANTHROPIC_BASE_URL.rstrip("/")
        if not self.config.ANTHROPIC_API_KEY:
            logger.warning("ANTHROPIC_API_KEY is not set; generation requests will be rejected")
        logger.info(f"Initialized Anthropic client with model: {self.model}")

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "anthropic-version": self.config.ANTHROPIC_VERSION,
            "x-api-key": self.config.ANTHROPIC_API_KEY or "",
        }

    def _build_payload(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
            "messages": [
                {"role": "user", "content": prompt}
            ],
        }

    def _error_message(self, response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return super()._error_message(response)


class OllamaClient(LLMClient):
    """Ollama client for locally served models"""

    client_type = "ollama"
    decoder_class = OllamaChunkDecoder

    def __init__(self, config: Optional[Settings] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self.base_url = self.config.OLLAMA_BASE_URL.rstrip("/")
        logger.info(f"Initialized Ollama client with model: {self.model}")

    def _endpoint(self) -> str:
        return f"{self.base_url}/api/generate"

    def _headers(self) -> Dict[str, str]:
        return {"content-type": "application/json"}

    def _build_payload(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": True,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }

    def _error_message(self, response: requests.Response) -> str:
        try:
            return str(response.json()["error"])
        except (ValueError, KeyError, TypeError):
            return super()._error_message(response)


class LLMClientFactory:
    """Factory for creating LLM clients"""

    _clients = {
        "anthropic": AnthropicClient,
        "ollama": OllamaClient,
    }

    @classmethod
    def create_client(
        cls,
        client_type: Optional[str] = None,
        **kwargs
    ) -> LLMClient:
        """
        Create LLM client instance

        Args:
            client_type: Type of client ('anthropic' or 'ollama'), defaults to settings
            **kwargs: Additional arguments for client initialization

        Returns:
            LLMClient instance

        Raises:
            ValueError: If client type is not supported
        """
        client_type = client_type or default_settings.LLM_TYPE
        if client_type not in cls._clients:
            raise ValueError(
                f"Unsupported LLM client type: {client_type}. "
                f"Supported types: {list(cls._clients.keys())}"
            )

        client_class = cls._clients[client_type]
        logger.info(f"Creating {client_type} LLM client")
        return client_class(**kwargs)


# Default client instance
llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the LLM client"""
    global llm_client
    if llm_client is None:
        llm_client = LLMClientFactory.create_client()
    return llm_client
