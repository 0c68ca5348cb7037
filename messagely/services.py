"""
Message handlers.

Each handler checks that the caller may act on the message, runs its
query, and shapes the response model. Failed preconditions come back
as Err values; database errors are left to propagate.
"""

import logging

from sqlalchemy.orm import Session

from messagely.results import Ok, Result, not_found, unauthorized
from messagely.schemas import MessageDetail, ReadReceipt, SendMessageRequest, SentMessage
from messagely.storage import (
    get_message_detail,
    get_message_recipient,
    insert_message,
    is_storable_id,
    set_message_read_at,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def get_message(db: Session, message_id: int, username: str) -> Result[MessageDetail]:
    """
    Fetch a message with both participants.

    Only the sender or the recipient may read it.
    """
    if not is_storable_id(message_id):
        return not_found()

    row = get_message_detail(db, message_id)
    if row is None:
        return not_found()

    if username not in (row["from_username"], row["to_username"]):
        logger.warning(f"User {username} is not a participant of message {message_id}")
        return unauthorized()

    return Ok(MessageDetail.from_row(row))


def send_message(db: Session, payload: SendMessageRequest, username: str) -> Result[SentMessage]:
    """Store a message from the caller to payload.to_username."""
    sent_at = utc_now_iso()
    row = insert_message(
        db,
        from_username=username,
        to_username=payload.to_username,
        body=payload.body,
        sent_at=sent_at,
    )
    return Ok(SentMessage(**row))


def mark_read(db: Session, message_id: int, username: str) -> Result[ReadReceipt]:
    """
    Stamp read_at on a message. Only the recipient may do this.

    Repeated calls re-stamp read_at with the current time.
    """
    if not is_storable_id(message_id):
        return not_found()

    to_username = get_message_recipient(db, message_id)
    if to_username is None:
        return not_found()

    if username != to_username:
        logger.warning(f"User {username} is not the recipient of message {message_id}")
        return unauthorized()

    read_at = utc_now_iso()
    set_message_read_at(db, message_id, read_at)
    return Ok(ReadReceipt(id=message_id, read_at=read_at))
