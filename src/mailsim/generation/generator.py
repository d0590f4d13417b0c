"""Message generator for producing the next email in a conversation.

This module provides the MessageGenerator class which asks a chat model to
write the next message as a given sender, given the other participants, the
conversation so far and an optional context prompt.

Classes:
    MessageGenerator: Generates message text through a LangChain chat model.
    GenerationError: Raised when a message cannot be generated.

Example:
    >>> from src.mailsim.core.llm_config import LLMFactory
    >>>
    >>> llm = LLMFactory.create("gpt-4o-mini", temperature=0.8, max_tokens=200)
    >>> generator = MessageGenerator(llm, model="gpt-4o-mini")
    >>> result = await generator.generate(
    ...     sender=alice,
    ...     others=[bob],
    ...     history=conversation.messages,
    ...     prompt="Planning the product launch",
    ... )
    >>> result.content
    'Hi Bob, ...'
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)

from src.mailsim.core.llm_config import estimate_cost
from src.mailsim.generation.models import GeneratedMessage, GenerationUsage
from src.mailsim.generation.prompts import (
    build_system_prompt,
    build_turn_prompt,
    format_history_entry,
)
from src.mailsim.store.models import Account, Message


logger = logging.getLogger(__name__)


GenerationErrorKind = Literal["invalid_request", "empty", "quota", "auth", "upstream"]

_QUOTA_MARKERS = ("quota", "rate limit", "rate_limit")
_AUTH_MARKERS = ("api key", "api_key", "authentication", "unauthorized")


# =============================================================================
# Exceptions
# =============================================================================


class GenerationError(Exception):
    """Raised when a message cannot be generated.

    Attributes:
        message: Human-readable error description.
        kind: Failure category (invalid_request, empty, quota, auth, upstream).
        account_name: Name of the sender the message was generated for.
    """

    def __init__(
        self,
        message: str,
        kind: GenerationErrorKind = "upstream",
        account_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.account_name = account_name

    def __str__(self) -> str:
        if self.account_name:
            return f"{self.message} (account: {self.account_name})"
        return self.message


def classify_llm_error(error: Exception) -> GenerationErrorKind:
    """Map a provider exception to a generation error kind."""
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    text = str(error).lower()
    if status == 429 or any(marker in text for marker in _QUOTA_MARKERS):
        return "quota"
    if status in (401, 403) or any(marker in text for marker in _AUTH_MARKERS):
        return "auth"
    return "upstream"


# =============================================================================
# Generator
# =============================================================================


class MessageGenerator:
    """Generates the next message of a conversation.

    Attributes:
        model: Model name used for cost estimation.
    """

    def __init__(self, llm: BaseChatModel, model: str) -> None:
        """Initialize the generator.

        Args:
            llm: Chat model to invoke.
            model: Model name, used to look up pricing.
        """
        self._llm = llm
        self.model = model

    async def generate(
        self,
        sender: Account,
        others: list[Account],
        history: list[Message],
        prompt: str | None = None,
    ) -> GeneratedMessage:
        """Generate the next message as ``sender``.

        Args:
            sender: Account the message is written as.
            others: The other participants (at least one).
            history: Conversation so far, oldest first.
            prompt: Optional conversation context.

        Returns:
            GeneratedMessage with the trimmed text and usage when reported.

        Raises:
            GenerationError: Invalid input, empty output, or a provider error.
        """
        if not sender.name.strip() or not sender.email.strip():
            raise GenerationError(
                "Invalid account data. Name and email are required.",
                kind="invalid_request",
                account_name=sender.name or None,
            )
        if not others:
            raise GenerationError(
                "At least one other account is required for conversation.",
                kind="invalid_request",
                account_name=sender.name,
            )

        messages = self.build_messages(sender, others, history, prompt)
        logger.debug(
            f"Generating message for {sender.label} with {len(messages)} prompt turns"
        )

        try:
            result = await self._llm.ainvoke(messages)
        except Exception as e:
            kind = classify_llm_error(e)
            logger.error(f"Generation failed for {sender.label} ({kind}): {e}")
            raise GenerationError(
                f"Failed to generate message: {e}",
                kind=kind,
                account_name=sender.name,
            ) from e

        content = result.content
        if not isinstance(content, str):
            content = str(content)
        content = content.strip()
        if not content:
            raise GenerationError(
                "The model returned an empty message.",
                kind="empty",
                account_name=sender.name,
            )

        return GeneratedMessage(content=content, usage=self._extract_usage(result))

    @staticmethod
    def build_messages(
        sender: Account,
        others: list[Account],
        history: list[Message],
        prompt: str | None,
    ) -> list[BaseMessage]:
        """Build the chat turns for a generation call.

        The sender's own past messages become assistant turns; everyone
        else's become user turns prefixed with their name and email. Blank
        history entries are skipped.
        """
        messages: list[BaseMessage] = [
            SystemMessage(content=build_system_prompt(sender, others, prompt))
        ]
        for entry in history:
            if not entry.content or not entry.content.strip():
                continue
            if entry.account_id == sender.id:
                messages.append(AIMessage(content=entry.content))
            else:
                messages.append(HumanMessage(content=format_history_entry(entry)))
        messages.append(
            HumanMessage(content=build_turn_prompt(bool(history), prompt))
        )
        return messages

    def _extract_usage(self, result: Any) -> GenerationUsage | None:
        usage = getattr(result, "usage_metadata", None)
        if not usage:
            return None
        input_tokens = int(usage.get("input_tokens", 0))
        output_tokens = int(usage.get("output_tokens", 0))
        total_tokens = int(usage.get("total_tokens", input_tokens + output_tokens))
        return GenerationUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost_usd=estimate_cost(self.model, input_tokens, output_tokens),
        )
