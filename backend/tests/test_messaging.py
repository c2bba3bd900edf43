"""
Chat and notification tests.

Verifies:
- Customers open (or reopen) a chat with their seller
- Posting bumps the other participants' unread counters and notifies them
- Marking a conversation read clears the counter and its notifications
- Conversations stay within the seller scope and are private to participants
- The notification feed can be marked read by id or all at once
"""

import pytest

from marketplace.models import Notification
from marketplace.services import messaging_service


@pytest.fixture
def seller_chat(client, customer_headers):
    return client.post("/api/conversations/seller-chat", headers=customer_headers).json["data"]


def post(client, conversation_id, body, headers):
    return client.post(f"/api/conversations/{conversation_id}/messages", json={"body": body}, headers=headers)


def message_notifications(db_session, user_id):
    return db_session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.type == messaging_service.NOTIFICATION_NEW_MESSAGE,
    ).all()


# =============================================================================
# CONVERSATIONS
# =============================================================================


class TestSellerChat:

    def test_customer_opens_seller_chat_once(self, client, customer_headers, customer, seller):
        first = client.post("/api/conversations/seller-chat", headers=customer_headers)
        assert first.status_code == 201
        assert sorted(first.json["data"]["participants"]) == sorted([customer.user_id, seller.id])
        assert first.json["data"]["seller_id"] == seller.id

        again = client.post("/api/conversations/seller-chat", headers=customer_headers)
        assert again.status_code == 200
        assert again.json["data"]["id"] == first.json["data"]["id"]

    def test_sellers_cannot_open_seller_chat(self, client, seller_headers):
        assert client.post("/api/conversations/seller-chat", headers=seller_headers).status_code == 400

    def test_seller_lists_the_conversation(self, client, seller_headers, seller_chat):
        resp = client.get("/api/conversations", headers=seller_headers)
        assert [c["id"] for c in resp.json["data"]] == [seller_chat["id"]]


class TestMessages:

    def test_post_bumps_unread_and_notifies(self, client, customer_headers, seller_headers, seller, seller_chat, db_session):
        resp = post(client, seller_chat["id"], "  Can you deliver Friday?  ", customer_headers)

        assert resp.status_code == 201
        assert resp.json["data"]["body"] == "Can you deliver Friday?"

        seller_view = client.get(f"/api/conversations/{seller_chat['id']}", headers=seller_headers).json["data"]
        assert seller_view["unread_count"] == 1
        assert seller_view["last_message"] == "Can you deliver Friday?"

        customer_view = client.get(f"/api/conversations/{seller_chat['id']}", headers=customer_headers).json["data"]
        assert customer_view["unread_count"] == 0

        notes = message_notifications(db_session, seller.id)
        assert len(notes) == 1
        assert notes[0].data == {"conversation_id": seller_chat["id"]}
        assert notes[0].title == "New message from Corner Bistro"

    def test_messages_come_back_oldest_first(self, client, customer_headers, seller_headers, seller_chat):
        post(client, seller_chat["id"], "first", customer_headers)
        post(client, seller_chat["id"], "second", seller_headers)
        post(client, seller_chat["id"], "third", customer_headers)

        resp = client.get(f"/api/conversations/{seller_chat['id']}/messages?limit=2", headers=seller_headers)

        page = resp.json["data"]
        assert [m["body"] for m in page["messages"]] == ["second", "third"]
        assert page["has_more"] is True

    def test_empty_message_rejected(self, client, customer_headers, seller_chat):
        assert post(client, seller_chat["id"], "   ", customer_headers).status_code == 400

    def test_overlong_message_rejected(self, client, customer_headers, seller_chat):
        body = "x" * (messaging_service.MAX_MESSAGE_LENGTH + 1)
        assert post(client, seller_chat["id"], body, customer_headers).status_code == 400

    def test_mark_read_clears_counter_and_notifications(
        self, client, customer_headers, seller_headers, seller, seller_chat, db_session
    ):
        post(client, seller_chat["id"], "hello", customer_headers)
        post(client, seller_chat["id"], "anyone there?", customer_headers)

        resp = client.patch(f"/api/conversations/{seller_chat['id']}/messages", headers=seller_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["unread_count"] == 0
        assert all(n.is_read for n in message_notifications(db_session, seller.id))


class TestConversationScope:

    def test_outsider_cannot_read_or_post(self, client, other_seller_headers, seller_chat):
        conversation_id = seller_chat["id"]
        assert client.get(f"/api/conversations/{conversation_id}/messages", headers=other_seller_headers).status_code == 403
        assert post(client, conversation_id, "hi", other_seller_headers).status_code == 403

    def test_seller_cannot_chat_with_another_sellers_customer(self, client, seller_headers, other_customer):
        resp = client.post(
            "/api/conversations",
            json={"participant_ids": [other_customer.user_id]},
            headers=seller_headers,
        )
        assert resp.status_code == 403

    def test_anyone_may_chat_with_an_admin(self, client, customer_headers, admin):
        resp = client.post("/api/conversations", json={"participant_ids": [admin.id]}, headers=customer_headers)
        assert resp.status_code == 201

    def test_admin_reads_any_conversation(self, client, admin_headers, seller_chat):
        resp = client.get(f"/api/conversations/{seller_chat['id']}/messages", headers=admin_headers)
        assert resp.status_code == 200

    def test_unknown_participant(self, client, seller_headers):
        resp = client.post("/api/conversations", json={"participant_ids": [99999]}, headers=seller_headers)
        assert resp.status_code == 404

    def test_conversation_with_self_rejected(self, client, seller_headers, seller):
        resp = client.post("/api/conversations", json={"participant_ids": [seller.id]}, headers=seller_headers)
        assert resp.status_code == 400


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestNotifications:

    @pytest.fixture
    def feed(self, seller, db_session):
        for i in range(3):
            messaging_service.notify(seller.id, messaging_service.NOTIFICATION_NEW_ORDER, f"Order {i}", "New order")
        db_session.commit()

    def test_feed_lists_own_notifications(self, client, seller_headers, other_seller_headers, feed):
        resp = client.get("/api/notifications", headers=seller_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["unread_count"] == 3
        assert len(resp.json["data"]["notifications"]) == 3

        other = client.get("/api/notifications", headers=other_seller_headers).json["data"]
        assert other == {"notifications": [], "unread_count": 0}

    def test_mark_by_id(self, client, seller_headers, feed):
        first_id = client.get("/api/notifications", headers=seller_headers).json["data"]["notifications"][0]["id"]

        resp = client.patch("/api/notifications", json={"notification_ids": [first_id]}, headers=seller_headers)

        assert resp.json["data"] == {"updated": 1}
        unread = client.get("/api/notifications?unread_only=true", headers=seller_headers).json["data"]
        assert unread["unread_count"] == 2
        assert first_id not in [n["id"] for n in unread["notifications"]]

    def test_mark_all(self, client, seller_headers, feed):
        resp = client.patch("/api/notifications", json={"all": True}, headers=seller_headers)
        assert resp.json["data"] == {"updated": 3}
        assert client.get("/api/notifications", headers=seller_headers).json["data"]["unread_count"] == 0

    def test_cannot_mark_someone_elses(self, client, seller_headers, other_seller_headers, feed):
        first_id = client.get("/api/notifications", headers=seller_headers).json["data"]["notifications"][0]["id"]

        resp = client.patch("/api/notifications", json={"notification_ids": [first_id]}, headers=other_seller_headers)
        assert resp.json["data"] == {"updated": 0}

    def test_mark_without_ids_rejected(self, client, seller_headers):
        assert client.patch("/api/notifications", json={}, headers=seller_headers).status_code == 400
