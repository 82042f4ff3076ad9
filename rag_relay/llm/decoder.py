"""
Chunk decoders

Each model service frames its streamed output differently. A decoder turns one
raw chunk (one line of the response body) into at most one text delta.

A chunk that cannot be decoded is logged and produces nothing; the stream
carries on with the next chunk. A well-formed error record from the service is
not a decoding problem and raises GenerationError.
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from rag_relay.core.logging import get_logger
from rag_relay.llm.exceptions import GenerationError

logger = get_logger(__name__)


class ChunkDecoder(ABC):
    """Extracts an incremental text delta from one raw chunk"""

    def decode(self, raw: bytes) -> Optional[str]:
        """
        Decode a single raw chunk.

        Args:
            raw: One line of the model response body

        Returns:
            The text delta carried by the chunk, or None

        Raises:
            GenerationError: If the chunk is an error record from the service
        """
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            return self._decode_line(text.strip())
        except GenerationError:
            raise
        except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping undecodable chunk ({type(e).__name__}: {e}): {raw[:200]!r}")
            return None

    @abstractmethod
    def _decode_line(self, line: str) -> Optional[str]:
        pass


class AnthropicChunkDecoder(ChunkDecoder):
    """
    Messages API stream (server-sent events).

    Only `data:` lines are records; `event:` lines and comments carry nothing.
    The record's `type` tells what it is, and only `content_block_delta` with
    a `text_delta` holds answer text.
    """

    def _decode_line(self, line: str) -> Optional[str]:
        if not line.startswith("data:"):
            return None

        record: Dict[str, Any] = json.loads(line[len("data:"):].strip())
        record_type = record["type"]

        if record_type == "content_block_delta":
            delta = record["delta"]
            if delta.get("type") != "text_delta":
                return None
            if not isinstance(delta["text"], str):
                raise TypeError(f"delta text is {type(delta['text']).__name__}, expected str")
            return delta["text"]

        if record_type == "error":
            error = record.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            else:
                message = error
            raise GenerationError(str(message) if message else "Model service reported an error")

        return None


class OllamaChunkDecoder(ChunkDecoder):
    """Ollama /api/generate stream: one JSON object per line."""

    def _decode_line(self, line: str) -> Optional[str]:
        if not line:
            return None

        record: Dict[str, Any] = json.loads(line)
        if "error" in record:
            raise GenerationError(str(record["error"]))
        if record.get("done"):
            return None

        text = record["response"]
        if not isinstance(text, str):
            raise TypeError(f"response is {type(text).__name__}, expected str")
        return text or None
