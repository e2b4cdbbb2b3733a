"""
Message lifecycle: authorized send, dual-party soft delete, visible listing.

Each message carries two delete bits (sender, receiver). A party's delete
only ever sets its own bit; when both are set the row is purged.
"""

import logging
from dataclasses import dataclass
from typing import List

from profnet.authorization import MessagingPolicy, authorize
from profnet.errors import Forbidden, InvalidRequest, NotFound
from profnet.metrics import record_message_event
from profnet.models import DeleteStatus, Message
from profnet.repository import RecordStore

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 4096


@dataclass(frozen=True)
class DeleteResult:
    message_id: int
    delete_status: DeleteStatus
    purged: bool


def send(
    store: RecordStore, sender: str, receiver: str, content: str, policy: MessagingPolicy
) -> int:
    """
    Send a message after the authorization gate approves it.

    Nothing is written when the gate denies the send.

    Returns:
        The new message id
    """
    if not content or not content.strip():
        raise InvalidRequest("message content must not be empty")
    if len(content) > MAX_CONTENT_LENGTH:
        raise InvalidRequest(f"message content exceeds {MAX_CONTENT_LENGTH} characters")

    try:
        authorize(store, sender, receiver, policy)
    except Forbidden:
        record_message_event("forbidden")
        raise

    message_id = store.atomic(
        lambda: store.insert_message(sender, receiver, content, store.now()),
        "send_message",
    )
    logger.info(f"Message {message_id} delivered: {sender} -> {receiver}")
    record_message_event("sent")
    return message_id


def delete(store: RecordStore, message_id: int, party: str) -> DeleteResult:
    """
    Mark a message deleted for ``party`` and purge it once both parties
    have deleted it.

    Idempotent per party. The bit is applied with a single SQL OR so a
    concurrent delete by the other party is never lost.

    Raises:
        NotFound: message does not exist or party is not sender/receiver
    """
    def work() -> DeleteResult:
        message = store.get_message(message_id)
        if message is None or party not in (message.sender, message.receiver):
            raise NotFound(f"message {message_id} not found")
        bit = DeleteStatus.SENDER if party == message.sender else DeleteStatus.RECEIVER

        bits = store.update_message_delete_bits(message_id, bit)
        if bits is None:
            # Purged concurrently by the other party, so our bit was already set
            return DeleteResult(message_id, DeleteStatus.BOTH, purged=False)

        purged = bits == DeleteStatus.BOTH and store.purge_message(message_id)
        return DeleteResult(message_id, bits, purged)

    result = store.atomic(work, "delete_message")
    logger.info(
        f"Message {message_id} deleted by {party}: "
        f"status={int(result.delete_status)}, purged={result.purged}"
    )
    record_message_event("deleted")
    if result.purged:
        record_message_event("purged")
    return result


def list_visible(store: RecordStore, party: str) -> List[Message]:
    """Messages ``party`` sent or received and has not deleted, oldest first."""
    messages = store.query_messages(party)
    logger.debug(f"Visible messages for {party}: {len(messages)}")
    return messages
