from typing import Iterable, Iterator, Optional

from rag_relay.llm.client import LLMClient, get_llm_client
from rag_relay.llm.decoder import ChunkDecoder
from rag_relay.core.logging import get_logger

logger = get_logger(__name__)


def decode_stream(chunks: Iterable[bytes], decoder: ChunkDecoder) -> Iterator[str]:
    """
    Turn raw model chunks into text deltas, one chunk at a time.

    Chunks that carry no text (or cannot be decoded) are skipped; order is
    preserved. Errors raised by the chunk source propagate unchanged.

    Args:
        chunks: Raw chunk iterator from an LLM client
        decoder: Decoder matching the client's framing

    Yields:
        Non-empty text deltas
    """
    skipped = 0
    try:
        for chunk in chunks:
            delta = decoder.decode(chunk)
            if delta:
                yield delta
            else:
                skipped += 1
    finally:
        # releases the upstream HTTP response when the consumer stops early
        close = getattr(chunks, "close", None)
        if close is not None:
            close()

    logger.debug(f"Chunk stream exhausted ({skipped} chunks without text)")


def stream_completion(
    prompt: str,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    client: Optional[LLMClient] = None,
) -> Iterator[str]:
    """
    Stream text deltas for a prompt.

    Args:
        prompt: Full model input
        max_tokens: Generation limit, defaults to settings
        temperature: Sampling temperature, defaults to settings
        client: LLM client (uses the shared client if None)

    Returns:
        Lazy iterator of text deltas

    Raises:
        GenerationError: While iterating, if the model service fails
    """
    client = client or get_llm_client()
    logger.debug(f"Starting stream completion for prompt: {prompt[:50]}...")

    chunks = client.stream(prompt, max_tokens=max_tokens, temperature=temperature)
    return decode_stream(chunks, client.decoder_class())
