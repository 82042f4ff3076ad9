"""
Prompt Template Module

This module merges retrieved context and the user question into the single
text the model receives.

Variables in templates:
{context} - Retrieved document context
{question} - User question

Substitution happens in one pass: each placeholder is filled at most once
(its first occurrence), inserted values are never scanned for placeholders,
and a template missing a placeholder simply drops that value.
"""

import re
from typing import Dict, List, Optional

from rag_relay.core.config import Settings, settings as default_settings
from rag_relay.core.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDERS = ("context", "question")
_PLACEHOLDER_RE = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")


class PromptTemplate:
    """Template with {context} / {question} placeholders"""

    def __init__(self, template: str, description: str = ""):
        """
        Initialize prompt template.

        Args:
            template: Template string with {variable} placeholders
            description: Description of the template
        """
        self.template = template
        self.description = description

    def format(self, **values: str) -> str:
        """Substitute known placeholders, leaving any other braces alone."""
        used = set()

        def _substitute(match: re.Match) -> str:
            name = match.group(1)
            if name in used or name not in values:
                return match.group(0)
            used.add(name)
            return values[name]

        return _PLACEHOLDER_RE.sub(_substitute, self.template)

    def get_variables(self) -> List[str]:
        """Placeholder names present in the template, in order of first use"""
        seen: Dict[str, None] = {}
        for name in _PLACEHOLDER_RE.findall(self.template):
            seen.setdefault(name, None)
        return list(seen)


class PromptBuilder:
    """Builds model input from the configured template"""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.template = PromptTemplate(
            self.config.PROMPT_TEMPLATE,
            description="Template for RAG-based question answering"
        )

        missing = set(PLACEHOLDERS) - set(self.template.get_variables())
        if missing:
            logger.warning(f"Prompt template has no placeholder for: {sorted(missing)}")

    def build_rag_prompt(self, question: str, context: str) -> str:
        """
        Build complete RAG prompt with context.

        Args:
            question: User question
            context: Retrieved context ("" when nothing was found)

        Returns:
            Formatted prompt ready for LLM
        """
        prompt = self.template.format(context=context, question=question)
        logger.debug(f"Built RAG prompt ({len(prompt)} chars, {len(context)} chars of context)")
        return prompt


def assemble(template: str, context: str, question: str) -> str:
    """Fill a template's {context} and {question} placeholders once each."""
    return PromptTemplate(template).format(context=context, question=question)


# Global prompt builder
_prompt_builder = None


def get_prompt_builder() -> PromptBuilder:
    """Get or create prompt builder instance"""
    global _prompt_builder
    if _prompt_builder is None:
        _prompt_builder = PromptBuilder()
    return _prompt_builder
