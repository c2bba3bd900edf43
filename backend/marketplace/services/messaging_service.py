# Overview: Service-layer operations for chat conversations and the notification feed.

"""
Messaging Service

Conversations are polled by clients; nothing is pushed. Each participant
has an unread counter that is bumped when someone else posts and reset
when they mark the conversation read. Posting also drops a new_message
notification into every other participant's feed.

SCOPE: non-admin users may only talk within their seller scope: a seller
with their own customers, a customer with their seller, and anyone with
an admin.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import (
    Conversation,
    ConversationParticipant,
    Message,
    Notification,
    User,
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_SELLER,
)
from marketplace.time_utils import parse_iso_datetime, utcnow
from ..validation import AccessDeniedError, NotFoundError, ValidationError
from .access_policy import ACTION_UPDATE, ACTION_VIEW, Principal, Resource, require_access

logger = logging.getLogger(__name__)


class MessagingError(ValidationError):
    """Raised for invalid chat or notification requests."""


NOTIFICATION_NEW_MESSAGE = "new_message"
NOTIFICATION_NEW_ORDER = "new_order"
NOTIFICATION_ORDER_UPDATED = "order_updated"
NOTIFICATION_PAYMENT_UPDATED = "payment_updated"

MAX_MESSAGE_LENGTH = 5000
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def _clamp_limit(limit, default: int = DEFAULT_PAGE_SIZE) -> int:
    try:
        value = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        raise MessagingError("limit must be an integer")
    return max(1, min(value, MAX_PAGE_SIZE))


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def notify(user_id: int, type: str, title: str, message: str, data: dict | None = None) -> Notification:
    """Queue a notification on the current session; the caller commits."""
    notification = Notification(user_id=user_id, type=type, title=title, message=message, data=data or {})
    db.session.add(notification)
    return notification


def list_notifications(principal: Principal, *, limit=None, unread_only: bool = False) -> dict:
    query = db.session.query(Notification).filter(Notification.user_id == principal.user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    items = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(
        _clamp_limit(limit, default=20)
    ).all()
    unread = db.session.query(Notification).filter(
        Notification.user_id == principal.user_id,
        Notification.is_read.is_(False),
    ).count()
    return {"notifications": [n.to_dict() for n in items], "unread_count": unread}


def mark_notifications_read(principal: Principal, notification_ids=None, mark_all: bool = False) -> int:
    query = db.session.query(Notification).filter(
        Notification.user_id == principal.user_id,
        Notification.is_read.is_(False),
    )
    if not mark_all:
        if not notification_ids or not isinstance(notification_ids, list):
            raise MessagingError("notification_ids must be a non-empty list")
        query = query.filter(Notification.id.in_([str(i) for i in notification_ids]))

    now = utcnow()
    items = query.all()
    for item in items:
        item.is_read = True
        item.read_at = now
    db.session.commit()
    return len(items)


# =============================================================================
# CONVERSATIONS
# =============================================================================

def _may_chat(principal: Principal, other: User) -> bool:
    if principal.is_admin or other.role == ROLE_ADMIN:
        return True
    if principal.is_seller:
        return other.role == ROLE_CUSTOMER and other.seller_id == principal.user_id
    if principal.is_customer:
        return other.role == ROLE_SELLER and other.id == principal.seller_id
    return False


def _scope_seller_id(principal: Principal, users: list[User]) -> int | None:
    if principal.seller_id:
        return principal.seller_id
    for user in users:
        if user.role == ROLE_SELLER:
            return user.id
        if user.role == ROLE_CUSTOMER:
            return user.seller_id
    return None


def _find_existing(participant_ids: set[int]) -> Conversation | None:
    candidates = (
        db.session.query(Conversation)
        .join(ConversationParticipant)
        .filter(ConversationParticipant.user_id == min(participant_ids))
        .all()
    )
    for conversation in candidates:
        if set(conversation.participant_ids()) == participant_ids:
            return conversation
    return None


def create_conversation(principal: Principal, participant_ids, title: str | None = None) -> tuple[Conversation, bool]:
    """
    Get or create the conversation between the caller and participant_ids.
    Returns (conversation, created).
    """
    if not isinstance(participant_ids, list) or not participant_ids:
        raise MessagingError("participant_ids must be a non-empty list")
    try:
        others = {int(pid) for pid in participant_ids} - {principal.user_id}
    except (TypeError, ValueError):
        raise MessagingError("participant_ids must be user ids")
    if not others:
        raise MessagingError("A conversation needs at least one other participant")

    users = db.session.query(User).filter(User.id.in_(others), User.is_active.is_(True)).all()
    if len(users) != len(others):
        raise NotFoundError("One or more participants were not found")
    for user in users:
        if not _may_chat(principal, user):
            raise AccessDeniedError("You cannot start a conversation with this user")

    everyone = others | {principal.user_id}
    existing = _find_existing(everyone)
    if existing:
        return existing, False

    conversation = Conversation(
        seller_id=_scope_seller_id(principal, users),
        title=(title or "").strip() or None,
        created_by_user_id=principal.user_id,
    )
    conversation.participants = [ConversationParticipant(user_id=uid, unread_count=0) for uid in sorted(everyone)]
    db.session.add(conversation)
    db.session.commit()
    logger.info("Conversation %s opened by user %s", conversation.id, principal.user_id)
    return conversation, True


def get_or_create_seller_chat(principal: Principal) -> tuple[Conversation, bool]:
    if not principal.is_customer or not principal.seller_id:
        raise MessagingError("Only customers assigned to a seller can open a seller chat")
    return create_conversation(principal, [principal.seller_id])


def list_conversations(principal: Principal) -> list[Conversation]:
    return (
        db.session.query(Conversation)
        .join(ConversationParticipant)
        .filter(ConversationParticipant.user_id == principal.user_id)
        .order_by(Conversation.updated_at.desc())
        .all()
    )


def get_conversation(principal: Principal, conversation_id: str, action: str = ACTION_VIEW) -> Conversation:
    conversation = db.session.get(Conversation, conversation_id)
    if not conversation:
        raise NotFoundError("Conversation not found")
    require_access(principal, Resource.conversation(conversation.participant_ids()), action)
    return conversation


def list_messages(principal: Principal, conversation_id: str, *, limit=None, before: str | None = None) -> dict:
    """
    Newest page of messages (optionally strictly before a timestamp),
    returned oldest first.
    """
    conversation = get_conversation(principal, conversation_id)
    page_size = _clamp_limit(limit)

    query = db.session.query(Message).filter(Message.conversation_id == conversation.id)
    if before:
        try:
            before_dt = parse_iso_datetime(before)
        except ValueError:
            raise MessagingError("before must be an ISO-8601 timestamp")
        query = query.filter(Message.created_at < before_dt)

    rows = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(page_size + 1).all()
    has_more = len(rows) > page_size
    rows = list(reversed(rows[:page_size]))
    return {"messages": [m.to_dict() for m in rows], "has_more": has_more}


def post_message(principal: Principal, conversation_id: str, body: str | None) -> Message:
    conversation = get_conversation(principal, conversation_id, ACTION_UPDATE)
    text = (body or "").strip()
    if not text:
        raise MessagingError("Message text is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise MessagingError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")

    now = utcnow()
    message = Message(conversation_id=conversation.id, sender_id=principal.user_id, body=text, created_at=now)
    db.session.add(message)

    conversation.last_message = text[:200]
    conversation.last_message_at = now
    conversation.last_sender_id = principal.user_id
    conversation.updated_at = now

    sender = db.session.get(User, principal.user_id)
    sender_name = (sender.business_name or sender.display_name or sender.email) if sender else "Someone"
    for participant in conversation.participants:
        if participant.user_id == principal.user_id:
            continue
        participant.unread_count += 1
        notify(
            participant.user_id,
            NOTIFICATION_NEW_MESSAGE,
            f"New message from {sender_name}",
            text[:120],
            {"conversation_id": conversation.id},
        )

    db.session.commit()
    return message


def mark_conversation_read(principal: Principal, conversation_id: str) -> Conversation:
    conversation = get_conversation(principal, conversation_id)
    now = utcnow()
    for participant in conversation.participants:
        if participant.user_id == principal.user_id:
            participant.unread_count = 0
            participant.last_read_at = now

    pending = db.session.query(Notification).filter(
        Notification.user_id == principal.user_id,
        Notification.type == NOTIFICATION_NEW_MESSAGE,
        Notification.is_read.is_(False),
    ).all()
    for item in pending:
        if (item.data or {}).get("conversation_id") == conversation.id:
            item.is_read = True
            item.read_at = now

    db.session.commit()
    return conversation
