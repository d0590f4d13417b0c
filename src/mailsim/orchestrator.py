"""Conversation orchestrator tying generation, storage and sending together.

The orchestrator is the single entry point used by the command line: it
reads conversations from the repository, asks the generator for messages,
appends them, and hands conversations to the scheduler for sending.

Classes:
    ConversationOrchestrator: Generate and send conversations.

Example:
    >>> orchestrator = ConversationOrchestrator(repo, generator, scheduler)
    >>> messages = await orchestrator.generate_full_conversation(conv.id)
    >>> result = await orchestrator.send_all(conv.id)
"""

from __future__ import annotations

import asyncio
import logging

from src.mailsim.generation.generator import MessageGenerator
from src.mailsim.generation.models import GeneratedMessage
from src.mailsim.scheduling.engine import ThreadScheduler
from src.mailsim.scheduling.models import BatchResult
from src.mailsim.store.models import Account, Conversation, Message
from src.mailsim.store.repository import (
    ConversationRepository,
    StoreValidationError,
)


logger = logging.getLogger(__name__)


def _message_from(sender: Account, generated: GeneratedMessage) -> Message:
    usage = generated.usage
    return Message.from_account(
        sender,
        generated.content,
        cost=usage.cost_usd if usage else None,
        tokens=usage.to_token_usage() if usage else None,
    )


class ConversationOrchestrator:
    """Runs generation and sending for stored conversations.

    Attributes:
        repository: Conversation store.
        generator: Message generator.
        scheduler: Send scheduler.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        generator: MessageGenerator,
        scheduler: ThreadScheduler,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.scheduler = scheduler

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate_message(self, conversation_id: str) -> Message:
        """Generate one message from the selected account and append it.

        The conversation prompt is cleared once the message is stored.

        Raises:
            StoreValidationError: No sender selected or no other participants.
            GenerationError: The generator failed; nothing is appended.
        """
        conv = self.repository.get_conversation(conversation_id)
        self._require_participants(conv)
        sender = conv.selected_account

        generated = await self.generator.generate(
            sender, conv.other_accounts, conv.messages, conv.prompt
        )
        message = _message_from(sender, generated)
        self.repository.append_message(conversation_id, message)
        self.repository.set_prompt(conversation_id, "")
        return message

    async def generate_full_conversation(
        self, conversation_id: str, length: int | None = None
    ) -> list[Message]:
        """Generate a back-and-forth exchange, rotating through participants.

        Each message is appended as soon as it is generated, so a failure
        part way keeps the messages produced before it. The conversation
        prompt is cleared only when every message was generated.

        Args:
            conversation_id: Conversation to extend.
            length: Number of messages; defaults to the conversation length.

        Returns:
            The generated messages in order.

        Raises:
            StoreValidationError: No sender selected, no other participants,
                or a length below one.
            GenerationError: A generation call failed.
        """
        conv = self.repository.get_conversation(conversation_id)
        self._require_participants(conv)
        count = conv.conversation_length if length is None else length
        if count < 1:
            raise StoreValidationError("Length must be at least 1")

        participants = conv.participants
        history = list(conv.messages)
        generated_messages: list[Message] = []

        for i in range(count):
            sender = participants[i % len(participants)]
            others = [p for p in participants if p.id != sender.id]
            generated = await self.generator.generate(
                sender, others, history, conv.prompt
            )
            message = _message_from(sender, generated)
            self.repository.append_message(conversation_id, message)
            history.append(message)
            generated_messages.append(message)
            logger.debug(f"Generated message {i + 1}/{count} from {sender.label}")

        self.repository.set_prompt(conversation_id, "")
        logger.info(
            f"Generated {len(generated_messages)} message(s) in '{conv.name}'"
        )
        return generated_messages

    # =========================================================================
    # Sending
    # =========================================================================

    def participants_for(self, conversation_id: str) -> list[Account]:
        """Return participants with snapshots refreshed from stored accounts."""
        conv = self.repository.refresh_participants(conversation_id)
        return conv.participants

    async def send_all(
        self, conversation_id: str, cancel_event: asyncio.Event | None = None
    ) -> BatchResult:
        """Schedule and send every unsent message in the conversation."""
        participants = self.participants_for(conversation_id)
        conv = self.repository.get_conversation(conversation_id)
        return await self.scheduler.schedule_and_send(conv, participants, cancel_event)

    async def send_message(self, conversation_id: str, message_id: str) -> str:
        """Send one message immediately. Returns its transport Message-ID."""
        self.participants_for(conversation_id)
        conv = self.repository.get_conversation(conversation_id)
        return await self.scheduler.send_one(conv, message_id)

    @staticmethod
    def _require_participants(conv: Conversation) -> None:
        if conv.selected_account is None:
            raise StoreValidationError("Please select a sender account")
        if not conv.other_accounts:
            raise StoreValidationError(
                "Please add at least one participant to the conversation"
            )
