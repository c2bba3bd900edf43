from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z, utcnow
from .ids import new_document_id


class Conversation(db.Model):
    """
    Chat thread between users of one seller's scope (seller, its customers,
    admins). Clients poll for new messages.
    """
    __tablename__ = "conversations"

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    title = db.Column(db.String(255), nullable=True)

    last_message = db.Column(db.Text, nullable=True)
    last_message_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    participants = db.relationship(
        "ConversationParticipant", backref="conversation", lazy=True, cascade="all, delete-orphan"
    )

    def participant_ids(self) -> list[int]:
        return sorted(p.user_id for p in self.participants)

    def to_dict(self, viewer_id: int | None = None) -> dict:
        unread = {p.user_id: p.unread_count for p in self.participants}
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "participants": self.participant_ids(),
            "unread_count": unread.get(viewer_id, 0) if viewer_id is not None else unread,
            "last_message": self.last_message,
            "last_message_at": to_utc_z(self.last_message_at),
            "last_sender_id": self.last_sender_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ConversationParticipant(db.Model):
    __tablename__ = "conversation_participants"
    __table_args__ = (
        db.UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participants"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.String(32), db.ForeignKey("conversations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    unread_count = db.Column(db.Integer, nullable=False, default=0)
    last_read_at = db.Column(db.DateTime(timezone=True), nullable=True)


class Message(db.Model):
    __tablename__ = "messages"
    __table_args__ = (
        db.Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    conversation_id = db.Column(db.String(32), db.ForeignKey("conversations.id"), nullable=False)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sender = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender_name": (self.sender.display_name or self.sender.email) if self.sender else None,
            "body": self.body,
            "created_at": to_utc_z(self.created_at),
        }


class Notification(db.Model):
    """Per-user notification feed entry (new message, order update, payment)."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_document_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
