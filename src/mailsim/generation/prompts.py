"""Prompt templates for message generation.

Templates are string constants formatted with the sender's profile, the
other participants and the optional conversation context. Section builders
return an empty string when the corresponding value is missing so templates
never contain dangling labels.

Template Categories:
    - System: Defines the persona writing the next email
    - Turn prompts: Start or continue the conversation
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from src.mailsim.store.models import Account, Message


# =============================================================================
# System Prompt
# =============================================================================

GENERATE_MESSAGE_SYSTEM_PROMPT = """You are {sender_name} ({sender_email}). {personality_section}

You are participating in an email conversation with: {participant_list}.

{context_section}

Generate a natural email message that fits the conversation. Keep it concise (2-4 sentences typically). Respond as {sender_name} would, maintaining consistency with your personality."""

DEFAULT_PERSONALITY = "You are professional and friendly."


# =============================================================================
# Turn Prompts
# =============================================================================

START_CONVERSATION_PROMPT = "Start the conversation. {opening}"

DEFAULT_OPENING = "Introduce yourself and begin discussing the topic."

CONTINUE_CONVERSATION_PROMPT = (
    "Continue the conversation naturally based on the context above."
)

HISTORY_ENTRY_TEMPLATE = "From {name} ({email}): {content}"


# =============================================================================
# Section Builders
# =============================================================================


def build_personality_section(personality: str | None) -> str:
    if personality and personality.strip():
        return f"Your personality and communication style: {personality.strip()}."
    return DEFAULT_PERSONALITY


def build_context_section(prompt: str | None) -> str:
    if prompt and prompt.strip():
        return f"Conversation context: {prompt.strip()}"
    return ""


def format_participant_list(accounts: list[Account]) -> str:
    """Format accounts as ``Name (email), Name (email)``."""
    return ", ".join(f"{a.name} ({a.email})" for a in accounts)


def format_history_entry(message: Message) -> str:
    """Format another participant's message as a user turn."""
    return HISTORY_ENTRY_TEMPLATE.format(
        name=message.account_name or "Unknown",
        email=message.account_email or "unknown",
        content=message.content,
    )


def build_system_prompt(
    sender: Account, others: list[Account], prompt: str | None
) -> str:
    return GENERATE_MESSAGE_SYSTEM_PROMPT.format(
        sender_name=sender.name,
        sender_email=sender.email,
        personality_section=build_personality_section(sender.personality),
        participant_list=format_participant_list(others),
        context_section=build_context_section(prompt),
    )


def build_turn_prompt(has_history: bool, prompt: str | None) -> str:
    if has_history:
        return CONTINUE_CONVERSATION_PROMPT
    opening = prompt.strip() if prompt and prompt.strip() else DEFAULT_OPENING
    return START_CONVERSATION_PROMPT.format(opening=opening)
