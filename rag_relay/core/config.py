import os
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_PROMPT_TEMPLATE = """You are a helpful assistant. Use the following context to answer the user's question.
If the context does not contain the answer, say so and answer from general knowledge.

Context:
{context}

Question: {question}

Answer:"""


class Settings(BaseSettings):
    """Application settings and configuration"""

    # ============ APP SETTINGS ============
    APP_NAME: str = "RAG Relay"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # ============ SERVER SETTINGS ============
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 5000))
    RELOAD: bool = os.getenv("RELOAD", "False").lower() == "true"

    # ============ CORS SETTINGS ============
    # Comma-separated
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173")

    # ============ GENERATION SETTINGS ============
    # anthropic (Messages API stream) or ollama
    LLM_TYPE: str = os.getenv("LLM_TYPE", "anthropic")
    MODEL_ID: str = os.getenv("MODEL_ID", "claude-3-sonnet-20240229")
    PROMPT_TEMPLATE: str = DEFAULT_PROMPT_TEMPLATE
    MAX_TOKENS: int = Field(default=500, gt=0)
    TEMPERATURE: float = Field(default=0.7, ge=0.0, le=1.0)

    ANTHROPIC_API_KEY: Optional[str] = os.getenv("ANTHROPIC_API_KEY", None)
    ANTHROPIC_BASE_URL: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
    ANTHROPIC_VERSION: str = "2023-06-01"
    OLLAMA_BASE_URL: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    # Seconds. No read timeout by default: the oracle decides how long a generation runs.
    LLM_CONNECT_TIMEOUT: float = 10.0
    LLM_READ_TIMEOUT: Optional[float] = None

    # ============ RETRIEVAL SETTINGS (Elasticsearch) ============
    ELASTICSEARCH_URL: str = os.getenv("ELASTICSEARCH_URL", "http://localhost:9200")
    ELASTICSEARCH_API_KEY: Optional[str] = os.getenv("ELASTICSEARCH_API_KEY", None)
    ELASTICSEARCH_VERIFY_CERTS: bool = True
    INDEX_NAME: str = os.getenv("INDEX_NAME", "knowledge_base")
    CONTENT_FIELD: str = os.getenv("CONTENT_FIELD", "content")
    # Empty string disables the semantic clause
    SEMANTIC_FIELD: str = os.getenv("SEMANTIC_FIELD", "semantic_content")
    SEMANTIC_BOOST: float = Field(default=1.0, ge=0.0)
    RETRIEVAL_SIZE: int = Field(default=5, ge=1, le=100)
    RETRIEVAL_TIMEOUT: float = Field(default=10.0, gt=0.0)

    # ============ LOGGING SETTINGS ============
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE", None)

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Instantiate settings
settings = Settings()
