"""Message generation data models.

Classes:
    GenerationUsage: Token counts and estimated cost of one generation call.
    GeneratedMessage: Text produced for the next message plus its usage.
    UsageSummary: Totals across a conversation's messages.

Functions:
    summarize_usage: Total cost and tokens over messages that carry usage.

Design Notes:
    - These are dataclasses (not Pydantic); they never leave the process.
      The persisted form is ``Message.cost`` / ``Message.tokens``.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.mailsim.store.models import Message, TokenUsage


@dataclass(frozen=True)
class GenerationUsage:
    """Token counts and estimated cost of one generation call.

    Attributes:
        input_tokens: Prompt tokens.
        output_tokens: Completion tokens.
        total_tokens: Sum reported by the provider.
        cost_usd: Estimated cost, or None when the model has no pricing.
    """

    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: float | None = None

    def to_token_usage(self) -> TokenUsage:
        return TokenUsage(
            input=self.input_tokens,
            output=self.output_tokens,
            total=self.total_tokens,
        )


@dataclass(frozen=True)
class GeneratedMessage:
    """Text for the next message in a conversation."""

    content: str
    usage: GenerationUsage | None = None


@dataclass(frozen=True)
class UsageSummary:
    """Usage totals across messages."""

    total_cost_usd: float
    total_tokens: int
    message_count: int


def summarize_usage(messages: list[Message]) -> UsageSummary:
    """Total the recorded cost and tokens of ``messages``.

    Messages without recorded usage (for example, loaded from a mirror) are
    ignored.
    """
    total_cost = 0.0
    total_tokens = 0
    counted = 0
    for message in messages:
        if message.cost is None and message.tokens is None:
            continue
        counted += 1
        total_cost += message.cost or 0.0
        if message.tokens is not None:
            total_tokens += message.tokens.total
    return UsageSummary(
        total_cost_usd=round(total_cost, 8),
        total_tokens=total_tokens,
        message_count=counted,
    )
