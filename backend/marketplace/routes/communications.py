# Overview: Flask API routes for chat conversations and the notification feed.

"""
Communications Routes

Clients poll these endpoints; there is no push channel.

SECURITY: All routes require authentication. Conversations are visible to
their participants only; notifications to their owner only.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import SERVICE_ERRORS, error_response, fail, ok
from ..services import messaging_service


conversations_bp = Blueprint("conversations", __name__, url_prefix="/api/conversations")
notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


# =============================================================================
# CONVERSATIONS
# =============================================================================

@conversations_bp.get("")
@require_auth
def list_conversations_route():
    try:
        conversations = messaging_service.list_conversations(g.principal)
        return ok([c.to_dict(viewer_id=g.principal.user_id) for c in conversations])
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list conversations")
        return fail("Internal server error", 500)


@conversations_bp.post("")
@require_auth
def create_conversation_route():
    """Request body: {"participant_ids": [3], "title": "optional"}"""
    try:
        data = request.get_json(silent=True) or {}
        conversation, created = messaging_service.create_conversation(
            g.principal, data.get("participant_ids"), data.get("title")
        )
        return ok(conversation.to_dict(viewer_id=g.principal.user_id), 201 if created else 200)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create conversation")
        return fail("Internal server error", 500)


@conversations_bp.post("/seller-chat")
@require_auth
def seller_chat_route():
    try:
        conversation, created = messaging_service.get_or_create_seller_chat(g.principal)
        return ok(conversation.to_dict(viewer_id=g.principal.user_id), 201 if created else 200)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open seller chat")
        return fail("Internal server error", 500)


@conversations_bp.get("/<conversation_id>")
@require_auth
def get_conversation_route(conversation_id: str):
    try:
        conversation = messaging_service.get_conversation(g.principal, conversation_id)
        return ok(conversation.to_dict(viewer_id=g.principal.user_id))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load conversation")
        return fail("Internal server error", 500)


@conversations_bp.get("/<conversation_id>/messages")
@require_auth
def list_messages_route(conversation_id: str):
    """Query parameters: limit (default 50, max 100), before (ISO timestamp)."""
    try:
        page = messaging_service.list_messages(
            g.principal,
            conversation_id,
            limit=request.args.get("limit"),
            before=request.args.get("before"),
        )
        return ok(page)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list messages")
        return fail("Internal server error", 500)


@conversations_bp.post("/<conversation_id>/messages")
@require_auth
def post_message_route(conversation_id: str):
    """Request body: {"body": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        message = messaging_service.post_message(g.principal, conversation_id, data.get("body"))
        return ok(message.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to post message")
        return fail("Internal server error", 500)


@conversations_bp.patch("/<conversation_id>/messages")
@require_auth
def mark_read_route(conversation_id: str):
    try:
        conversation = messaging_service.mark_conversation_read(g.principal, conversation_id)
        return ok(conversation.to_dict(viewer_id=g.principal.user_id))
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark conversation read")
        return fail("Internal server error", 500)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Query parameters: limit (default 20), unread_only (default false)."""
    try:
        feed = messaging_service.list_notifications(
            g.principal,
            limit=request.args.get("limit"),
            unread_only=request.args.get("unread_only", "false").lower() == "true",
        )
        return ok(feed)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return fail("Internal server error", 500)


@notifications_bp.patch("")
@require_auth
def mark_notifications_route():
    """Request body: {"notification_ids": ["..."]} or {"all": true}"""
    try:
        data = request.get_json(silent=True) or {}
        updated = messaging_service.mark_notifications_read(
            g.principal,
            notification_ids=data.get("notification_ids"),
            mark_all=bool(data.get("all")),
        )
        return ok({"updated": updated})
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return fail("Internal server error", 500)
