"""
Retriever Module

This module fetches supporting context for a question from the Elasticsearch
search index.

Retrieval Process:
1. Build a hybrid query (lexical match + optional weighted semantic clause)
2. POST it to the index's _search endpoint
3. Pull the content field out of every hit, in ranked order
4. Join the fragments with paragraph breaks

This is the "R" in "RAG". The retriever never raises on oracle failures:
generation simply proceeds without context.
"""

from typing import List, Dict, Any, Optional

import requests

from rag_relay.core.config import Settings, settings as default_settings
from rag_relay.core.logging import get_logger

logger = get_logger(__name__)

CONTEXT_SEPARATOR = "\n\n"


def resolve_field(source: Dict[str, Any], field: str) -> Any:
    """
    Look up a field in a hit's _source.

    The literal key wins ("a.b" stored as a flat key), otherwise the dotted
    name is walked as a path through nested objects. Returns None when neither
    resolves.
    """
    if not isinstance(source, dict):
        return None
    if field in source:
        return source[field]

    value: Any = source
    for part in field.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class Retriever:
    """
    Retrieves context text from an Elasticsearch index.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize retriever.

        Args:
            config: Settings instance (uses the shared settings if None)
            session: HTTP session used for index calls (a new one if None)
        """
        self.config = config or default_settings
        self.session = session or requests.Session()
        self.base_url = self.config.ELASTICSEARCH_URL.rstrip("/")
        self.index_name = self.config.INDEX_NAME
        self.content_field = self.config.CONTENT_FIELD
        self.semantic_field = self.config.SEMANTIC_FIELD
        self.timeout = self.config.RETRIEVAL_TIMEOUT

        logger.info(
            f"Initialized Retriever: index={self.index_name}, "
            f"content_field={self.content_field}, "
            f"semantic_field={self.semantic_field or '-'}"
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.ELASTICSEARCH_API_KEY:
            headers["Authorization"] = f"ApiKey {self.config.ELASTICSEARCH_API_KEY}"
        return headers

    def build_query(self, query: str) -> Dict[str, Any]:
        """
        Build the _search request body.

        Args:
            query: User query string

        Returns:
            Elasticsearch query DSL as a dict
        """
        should: List[Dict[str, Any]] = [
            {"match": {self.content_field: {"query": query}}}
        ]
        if self.semantic_field:
            should.append({
                "semantic": {
                    "field": self.semantic_field,
                    "query": query,
                    "boost": self.config.SEMANTIC_BOOST,
                }
            })

        return {
            "size": self.config.RETRIEVAL_SIZE,
            "query": {"bool": {"should": should}},
        }

    def extract_context(self, body: Dict[str, Any]) -> str:
        """
        Concatenate the content field of each hit in ranked order.

        Hits that are not objects, or carry no text, are skipped.

        Raises:
            KeyError, TypeError: If the response does not look like a search result
        """
        hits = body["hits"]["hits"]
        if not isinstance(hits, list):
            raise TypeError(f"hits is {type(hits).__name__}, expected list")

        fragments = []
        for hit in hits:
            if not isinstance(hit, dict):
                logger.debug(f"Skipping hit of type {type(hit).__name__}")
                continue
            value = resolve_field(hit.get("_source"), self.content_field)
            if isinstance(value, str) and value:
                fragments.append(value)
            else:
                logger.debug(f"Hit {hit.get('_id')} has no '{self.content_field}' text")
        return CONTEXT_SEPARATOR.join(fragments)

    def retrieve(self, query: str) -> str:
        """
        Retrieve context text for a query.

        Args:
            query: User query string

        Returns:
            Concatenated hit contents, or "" when nothing matched or the
            index could not be queried
        """
        if not query or not query.strip():
            logger.warning("Empty query provided")
            return ""

        url = f"{self.base_url}/{self.index_name}/_search"
        logger.debug(f"Retrieving context for query: {query[:100]}...")

        try:
            response = self.session.post(
                url,
                json=self.build_query(query),
                headers=self._headers(),
                timeout=self.timeout,
                verify=self.config.ELASTICSEARCH_VERIFY_CERTS,
            )
            response.raise_for_status()
            context = self.extract_context(response.json())
        except requests.exceptions.RequestException as e:
            logger.error(f"Search request failed, continuing without context: {e}")
            return ""
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Malformed search response, continuing without context: {e}")
            return ""

        logger.info(f"Retrieved {len(context)} characters of context")
        return context

    def ping(self) -> bool:
        """Check whether the search cluster answers."""
        try:
            response = self.session.get(
                self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                verify=self.config.ELASTICSEARCH_VERIFY_CERTS,
            )
            response.raise_for_status()
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Elasticsearch connection error: {e}")
            return False


# Global retriever instance
_retriever = None


def get_retriever() -> Retriever:
    """Get or create retriever instance"""
    global _retriever
    if _retriever is None:
        _retriever = Retriever()
    return _retriever
