"""
Chat Service Module

Business logic layer for chat operations.
Handles:
- Question validation
- Context retrieval
- Prompt preparation
- Opening the generation stream behind an event relay
"""

from typing import Optional, Dict, Any

from rag_relay.core.config import Settings, settings as default_settings
from rag_relay.core.logging import get_logger
from rag_relay.rag.retriever import Retriever, get_retriever
from rag_relay.rag.prompt import PromptBuilder, get_prompt_builder
from rag_relay.llm.client import LLMClient, get_llm_client
from rag_relay.llm.streaming import stream_completion
from rag_relay.services.relay import EventRelay

logger = get_logger(__name__)

MAX_QUESTION_LENGTH = 10000


class ChatService:
    """
    Service for handling streaming RAG chat exchanges.

    Holds no per-exchange state: every call to `open_stream` builds its own
    prompt, generation stream and relay.
    """

    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        llm_client: Optional[LLMClient] = None,
        config: Optional[Settings] = None
    ):
        """Initialize chat service with RAG components"""
        self.config = config or default_settings
        self.retriever = retriever or get_retriever()
        self.prompt_builder = prompt_builder or get_prompt_builder()
        self.llm_client = llm_client or get_llm_client()

        logger.info("Initialized ChatService")

    def validate_question(self, question: Optional[str]) -> str:
        """
        Validate the user question.

        Returns:
            The question with surrounding whitespace removed

        Raises:
            ValueError: If the question is missing, blank or too long
        """
        if not question or not question.strip():
            raise ValueError("Message is required")

        question = question.strip()
        if len(question) > MAX_QUESTION_LENGTH:
            raise ValueError(f"Message too long (max {MAX_QUESTION_LENGTH} characters)")
        return question

    def prepare_prompt(self, question: str) -> Dict[str, Any]:
        """
        Retrieve context and build the model prompt.

        Retrieval failures surface as empty context; the prompt is always
        built.

        Args:
            question: Validated user question

        Returns:
            Dict with prompt, context and question
        """
        context = self.retriever.retrieve(question)
        if not context:
            logger.info("No context found, generating without augmentation")

        prompt = self.prompt_builder.build_rag_prompt(question=question, context=context)
        return {
            "prompt": prompt,
            "context": context,
            "question": question,
        }

    def open_stream(self, question: Optional[str]) -> EventRelay:
        """
        Start one streaming exchange.

        The returned relay has already been started. If generation failed
        before producing output, the relay is closed and carries the error.

        Args:
            question: Raw user question

        Returns:
            EventRelay for the exchange

        Raises:
            ValueError: If the question is invalid
        """
        question = self.validate_question(question)
        logger.debug(f"Opening stream for: {question[:100]}...")

        prompt_data = self.prepare_prompt(question)
        deltas = stream_completion(
            prompt_data["prompt"],
            max_tokens=self.config.MAX_TOKENS,
            temperature=self.config.TEMPERATURE,
            client=self.llm_client,
        )

        relay = EventRelay(deltas)
        relay.start()
        return relay

    def health(self) -> Dict[str, Any]:
        """Report whether the search index answers and which model is configured"""
        return {
            "search_index_ok": self.retriever.ping(),
            "index": self.config.INDEX_NAME,
            "model": self.llm_client.get_model_info(),
        }


# Global service instance
_chat_service = None


def get_chat_service() -> ChatService:
    """Get or create chat service instance"""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
