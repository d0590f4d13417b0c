"""Send scheduling and email threading for conversations.

This module provides the ThreadScheduler, which turns a conversation's
generated messages into a timed sequence of real emails. A batch assigns
every unsent message a send time with random, cumulative gaps drawn from the
conversation's delay window, then walks the messages in order: waiting for
each time, sending it as a reply to the previous message sent in the same
batch, and recording the result on the message.

Senders without mail credentials are skipped and a failed send does not stop
the batch. Neither advances the thread, so the next successful send still
replies to the last message that actually went out. The first message sent in
a batch starts a new thread.

Classes:
    ThreadScheduler: Schedules and dispatches a conversation's messages.
    Mailer: Protocol for the mail transport.

Functions:
    assign_send_times: Pure schedule computation.
    reply_subject: Subject line for a message in the thread.

Example:
    >>> scheduler = ThreadScheduler(mailer=SMTPMailer(), repository=repo)
    >>> result = await scheduler.schedule_and_send(conv, conv.participants)
    >>> f"Sent {result.sent_count} out of {result.total_count} messages"
    'Sent 3 out of 3 messages'
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Protocol

from src.mailsim.core.clock import Clock, SystemClock
from src.mailsim.dispatch.models import DispatchReceipt
from src.mailsim.scheduling.models import (
    BatchResult,
    MessageOutcome,
    OutcomeStatus,
    SchedulerError,
)
from src.mailsim.store.models import Account, Conversation, Message
from src.mailsim.store.repository import ConversationRepository, StoreError


logger = logging.getLogger(__name__)

REPLY_PREFIX = "Re: "


class Mailer(Protocol):
    """Mail transport used by the scheduler."""

    async def send(
        self,
        sender: Account,
        recipients: list[Account],
        subject: str,
        body: str,
        thread_parent_id: str | None = None,
        references: list[str] | None = None,
    ) -> DispatchReceipt: ...


# =============================================================================
# Pure Helpers
# =============================================================================


def assign_send_times(
    messages: list[Message],
    min_delay_minutes: float,
    max_delay_minutes: float,
    start: datetime,
    rng: random.Random,
) -> list[Message]:
    """Assign cumulative send times to ``messages``.

    The first message is scheduled at ``start``. Every later message is
    scheduled a random whole number of milliseconds, drawn uniformly from
    ``[min, max]`` minutes, after the previous one.

    Args:
        messages: Messages in send order. Not mutated.
        min_delay_minutes: Lower bound of each gap.
        max_delay_minutes: Upper bound of each gap.
        start: Send time of the first message.
        rng: Random source.

    Returns:
        Copies of ``messages`` with ``scheduled_send_time`` set.
    """
    min_ms = round(min_delay_minutes * 60_000)
    max_ms = max(min_ms, round(max_delay_minutes * 60_000))

    scheduled: list[Message] = []
    cumulative_ms = 0
    for index, message in enumerate(messages):
        if index > 0:
            cumulative_ms += rng.randint(min_ms, max_ms)
        send_time = start + timedelta(milliseconds=cumulative_ms)
        scheduled.append(message.model_copy(update={"scheduled_send_time": send_time}))
    return scheduled


def reply_subject(conversation: Conversation, thread_parent_id: str | None) -> str:
    """Return the subject for the next email of ``conversation``."""
    subject = conversation.thread_subject
    if thread_parent_id and not subject.startswith(REPLY_PREFIX):
        return f"{REPLY_PREFIX}{subject}"
    return subject


def _thread_chain(conversation: Conversation) -> list[str]:
    return [
        m.email_message_id
        for m in conversation.messages
        if m.sent and m.email_message_id
    ]


# =============================================================================
# Scheduler
# =============================================================================


class ThreadScheduler:
    """Schedules and sends a conversation's messages as one email thread.

    Attributes:
        mailer: Mail transport.
        repository: Store that receives per-message updates.
        clock: Time source used for scheduling and waiting.
    """

    def __init__(
        self,
        mailer: Mailer,
        repository: ConversationRepository,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.mailer = mailer
        self.repository = repository
        self.clock = clock or SystemClock()
        self._rng = rng or random.Random()

    async def schedule_and_send(
        self,
        conversation: Conversation,
        participants: list[Account],
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Schedule every unsent message, then send them in order.

        All send times are written to the repository before the first send.
        Each message is then sent once its time arrives, replying to the last
        message that was successfully sent in this batch. Any exception other
        than cancellation raised by the mailer marks that message failed.

        Args:
            conversation: Conversation whose unsent messages form the batch.
            participants: Current participant accounts (with credentials).
            cancel_event: Set to stop the batch; remaining messages are
                unscheduled and reported as cancelled.

        Returns:
            BatchResult describing every message in the batch.

        Raises:
            SchedulerError: The conversation has no unsent messages.
        """
        batch = conversation.unsent_messages
        if not batch:
            raise SchedulerError(f"'{conversation.name}' has no unsent messages")

        scheduled = assign_send_times(
            batch,
            conversation.min_delay_minutes,
            conversation.max_delay_minutes,
            self.clock.now(),
            self._rng,
        )
        self.repository.update_messages(
            conversation.id,
            {m.id: {"scheduled_send_time": m.scheduled_send_time} for m in scheduled},
        )

        result = BatchResult(
            total_count=len(scheduled),
            scheduled_times={m.id: m.scheduled_send_time for m in scheduled},
        )
        logger.info(
            f"Scheduled {len(scheduled)} message(s) in '{conversation.name}' "
            f"with {conversation.min_delay_minutes}-"
            f"{conversation.max_delay_minutes} minute gaps"
        )

        # Threading starts fresh in every batch
        thread_parent_id: str | None = None
        chain: list[str] = []
        by_id = {a.id: a for a in participants}
        pending = [m.id for m in scheduled]

        try:
            for message in scheduled:
                if cancel_event is not None and cancel_event.is_set():
                    break

                sender = by_id.get(message.account_id)
                if sender is None or not sender.has_credentials:
                    logger.warning(
                        f"Skipping message from {message.account_name}: "
                        f"no email configuration"
                    )
                    result.record_skip(message.account_name)
                    self._finish(conversation, message, pending, result, "skipped")
                    continue

                if not await self._wait_until(message.scheduled_send_time, cancel_event):
                    break

                recipients = [a for a in participants if a.id != message.account_id]
                if not recipients:
                    logger.warning(f"Skipping message {message.id}: no recipients")
                    self._finish(
                        conversation, message, pending, result, "no_recipients"
                    )
                    continue

                try:
                    receipt = await self.mailer.send(
                        sender,
                        recipients,
                        reply_subject(conversation, thread_parent_id),
                        message.content,
                        thread_parent_id=thread_parent_id,
                        references=list(chain),
                    )
                except Exception as e:
                    logger.warning(
                        f"Failed to send message {message.id} from "
                        f"{sender.label}: {e}"
                    )
                    self._finish(
                        conversation, message, pending, result, "failed", error=str(e)
                    )
                    continue

                thread_parent_id = receipt.transport_message_id
                chain.append(thread_parent_id)
                result.sent_count += 1
                self._finish(
                    conversation,
                    message,
                    pending,
                    result,
                    "sent",
                    transport_message_id=thread_parent_id,
                )
        except asyncio.CancelledError:
            self._cancel_pending(conversation, pending, result)
            raise

        if pending:
            result.cancelled = True
            self._cancel_pending(conversation, pending, result)

        logger.info(
            f"Sent {result.sent_count} out of {result.total_count} messages "
            f"in '{conversation.name}'"
            + (
                f"; skipped {', '.join(result.skipped_account_names)}"
                if result.skipped_account_names
                else ""
            )
        )
        return result

    async def send_one(
        self,
        conversation: Conversation,
        message_id: str,
        account: Account | None = None,
    ) -> str:
        """Send a single message immediately.

        Args:
            conversation: Conversation holding the message.
            message_id: Message to send.
            account: Sender override; defaults to the message's author,
                then the conversation's selected account.

        Returns:
            The transport ``Message-ID`` of the sent email.

        Raises:
            SchedulerError: Unknown or already sent message, sender without
                credentials, or no recipients.
            DispatchError: The transport failed.
        """
        message = conversation.find_message(message_id)
        if message is None:
            raise SchedulerError(f"Unknown message: {message_id}")
        if message.sent:
            raise SchedulerError(f"Message {message_id} has already been sent")

        participants = conversation.participants
        sender = account or next(
            (p for p in participants if p.id == message.account_id),
            conversation.selected_account,
        )
        if sender is None or not sender.has_credentials:
            name = sender.name if sender else message.account_name
            raise SchedulerError(
                f"{name} has no email configuration. "
                f"Please configure email settings for this account."
            )

        recipients = [p for p in participants if p.id != sender.id]
        if not recipients:
            raise SchedulerError(f"'{conversation.name}' has no recipients")

        last_sent = conversation.last_sent_message()
        thread_parent_id = last_sent.email_message_id if last_sent else None
        receipt = await self.mailer.send(
            sender,
            recipients,
            reply_subject(conversation, thread_parent_id),
            message.content,
            thread_parent_id=thread_parent_id,
            references=_thread_chain(conversation),
        )

        self.repository.update_message(
            conversation.id,
            message.id,
            sent=True,
            scheduled_send_time=None,
            email_message_id=receipt.transport_message_id,
        )
        return receipt.transport_message_id

    # =========================================================================
    # Internals
    # =========================================================================

    async def _wait_until(
        self, send_time: datetime | None, cancel_event: asyncio.Event | None
    ) -> bool:
        """Wait until ``send_time``. Returns False if cancelled while waiting."""
        delay = 0.0
        if send_time is not None:
            delay = max(0.0, (send_time - self.clock.now()).total_seconds())

        if cancel_event is None:
            await self.clock.sleep(delay)
            return True

        sleeper = asyncio.ensure_future(self.clock.sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return not cancel_event.is_set()

    def _finish(
        self,
        conversation: Conversation,
        message: Message,
        pending: list[str],
        result: BatchResult,
        status: OutcomeStatus,
        transport_message_id: str | None = None,
        error: str | None = None,
    ) -> None:
        changes: dict[str, Any] = {"scheduled_send_time": None}
        if status == "sent":
            changes.update(sent=True, email_message_id=transport_message_id)
        try:
            self.repository.update_message(conversation.id, message.id, **changes)
        except StoreError as e:
            logger.warning(f"Could not record outcome of message {message.id}: {e}")
        pending.remove(message.id)
        result.outcomes.append(
            MessageOutcome(
                message_id=message.id,
                status=status,
                transport_message_id=transport_message_id,
                error=error,
            )
        )

    def _cancel_pending(
        self, conversation: Conversation, pending: list[str], result: BatchResult
    ) -> None:
        if not pending:
            return
        logger.info(
            f"Cancelled {len(pending)} pending message(s) in '{conversation.name}'"
        )
        try:
            self.repository.update_messages(
                conversation.id,
                {message_id: {"scheduled_send_time": None} for message_id in pending},
            )
        except StoreError as e:
            logger.warning(f"Could not unschedule pending messages: {e}")
        result.outcomes.extend(
            MessageOutcome(message_id=message_id, status="cancelled")
            for message_id in pending
        )
        pending.clear()
