"""
Order tests.

Verifies:
- Checkout pricing from the customer's price map and the delivery fee rule
- PATCH payments and credit notes keep the order aggregates consistent
- Status transitions, the overdue flag and deletion rules
- Ownership checks and notifications
"""

import pytest

from marketplace.models import CreditNote, Notification, Order, Transaction


def patch(client, order_id, body, headers):
    return client.patch(f"/api/orders/{order_id}", json=body, headers=headers)


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateOrder:

    def test_customer_order_uses_price_map_and_delivery_fee(self, client, customer_headers, customer, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": 2}]},
            headers=customer_headers,
        )

        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["customer_id"] == customer.id
        assert data["items"][0]["unit_price_cents"] == 1250
        assert data["subtotal_cents"] == 2500
        assert data["delivery_fee_cents"] == 500
        assert data["total_cents"] == 3000
        assert data["original_total_cents"] == 3000
        assert data["remaining_amount_cents"] == 3000
        assert data["payment_status"] == "pending"
        assert data["status"] == "pending"
        assert data["delivery_address"] == "1 Market Street"

    def test_free_delivery_at_threshold(self, client, customer_headers, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": 8}]},
            headers=customer_headers,
        )
        data = resp.json["data"]
        assert data["subtotal_cents"] == 10000
        assert data["delivery_fee_cents"] == 0
        assert data["total_cents"] == 10000

    def test_item_without_any_price_rejected(self, client, customer_headers, products, db_session):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["chicken"].id, "quantity": 1}]},
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert "Chicken thighs" in resp.json["error"]
        assert db_session.query(Order).count() == 0

    def test_request_price_used_when_no_price_map_entry(self, client, customer_headers, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["chicken"].id, "quantity": 3, "price": "9.00"}]},
            headers=customer_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["subtotal_cents"] == 2700

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "two", True])
    def test_invalid_quantity(self, client, customer_headers, products, quantity):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": quantity}]},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_empty_order_rejected(self, client, customer_headers):
        resp = client.post("/api/orders", json={"items": []}, headers=customer_headers)
        assert resp.status_code == 400

    def test_seller_orders_for_customer_and_is_notified(self, client, seller_headers, seller, customer, products, db_session):
        resp = client.post(
            "/api/orders",
            json={
                "customer_id": customer.id,
                "items": [{"product_id": products["beef"].id, "quantity": 1}],
                "payment_method": "cash",
            },
            headers=seller_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["payment_method"] == "cash"

        notes = db_session.query(Notification).filter_by(user_id=seller.id).all()
        assert [n.type for n in notes] == ["new_order"]
        assert notes[0].data["order_id"] == resp.json["data"]["id"]

    def test_other_seller_cannot_order_for_customer(self, client, other_seller_headers, customer, products):
        resp = client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": products["beef"].id, "quantity": 1}]},
            headers=other_seller_headers,
        )
        assert resp.status_code == 403

    def test_invalid_payment_method(self, client, customer_headers, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": 1}], "payment_method": "barter"},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_order_id_is_20_alphanumeric_characters(self, client, customer_headers, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": 1}]},
            headers=customer_headers,
        )
        order_id = resp.json["data"]["id"]
        assert len(order_id) == 20
        assert order_id.isalnum()

    def test_non_string_delivery_date_rejected(self, client, customer_headers, products):
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": products["beef"].id, "quantity": 1}], "delivery_date": 20260301},
            headers=customer_headers,
        )
        assert resp.status_code == 400


class TestReadOrders:

    def test_customer_lists_only_own_orders(self, client, customer_headers, make_order, other_customer):
        mine = make_order(1000)
        make_order(2000, for_customer=other_customer)

        resp = client.get("/api/orders", headers=customer_headers)
        assert [o["id"] for o in resp.json["data"]] == [mine.id]

    def test_filter_by_payment_status(self, client, seller_headers, make_order):
        make_order(1000)
        resp = client.get("/api/orders?payment_status=paid", headers=seller_headers)
        assert resp.json["data"] == []

        resp = client.get("/api/orders?payment_status=bogus", headers=seller_headers)
        assert resp.status_code == 400

    def test_other_seller_cannot_read(self, client, other_seller_headers, make_order):
        order = make_order(1000)
        assert client.get(f"/api/orders/{order.id}", headers=other_seller_headers).status_code == 403


# =============================================================================
# PAYMENTS
# =============================================================================


class TestOrderPayments:

    def test_partial_then_full_payment(self, client, seller_headers, make_order, db_session):
        order = make_order(10000)

        resp = patch(client, order.id, {"payment": {"amount": "40.00"}}, seller_headers)
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["payment_status"] == "partial"
        assert data["total_paid_cents"] == 4000
        assert data["remaining_amount_cents"] == 6000
        assert len(data["payments"]) == 1
        assert data["payments"][0]["transaction_id"]

        resp = patch(client, order.id, {"payment": {"amount_cents": 6000, "payment_method": "card"}}, seller_headers)
        data = resp.json["data"]
        assert data["payment_status"] == "paid"
        assert data["remaining_amount_cents"] == 0

        # Each direct payment is a transaction allocated to this order
        txns = db_session.query(Transaction).filter_by(related_order_id=order.id).all()
        assert sorted(t.amount_cents for t in txns) == [4000, 6000]

    def test_overpayment_rejected_without_writes(self, client, seller_headers, make_order, db_session):
        order = make_order(10000)

        resp = patch(client, order.id, {"payment": {"amount": "100.01"}}, seller_headers)
        assert resp.status_code == 400
        assert db_session.query(Transaction).count() == 0
        db_session.expire_all()
        assert db_session.get(Order, order.id).total_paid_cents == 0

    def test_amount_with_too_many_decimals(self, client, seller_headers, make_order):
        order = make_order(10000)
        resp = patch(client, order.id, {"payment": {"amount": "10.005"}}, seller_headers)
        assert resp.status_code == 400

    def test_customer_cannot_patch(self, client, customer_headers, make_order):
        order = make_order(10000)
        resp = patch(client, order.id, {"payment": {"amount": "10.00"}}, customer_headers)
        assert resp.status_code == 403

    def test_other_seller_cannot_pay(self, client, other_seller_headers, make_order, db_session):
        order = make_order(10000)
        resp = patch(client, order.id, {"payment": {"amount": "10.00"}}, other_seller_headers)
        assert resp.status_code == 403
        assert db_session.query(Transaction).count() == 0

    def test_customer_is_notified(self, client, seller_headers, customer, make_order, db_session):
        order = make_order(10000)
        patch(client, order.id, {"payment": {"amount": "25.00"}}, seller_headers)

        notes = db_session.query(Notification).filter_by(user_id=customer.user_id).all()
        assert [n.type for n in notes] == ["payment_updated"]


# =============================================================================
# CREDIT NOTES
# =============================================================================


class TestOrderCreditNotes:

    def test_credit_note_reduces_total(self, client, seller_headers, make_order, db_session):
        order = make_order(10000)

        resp = patch(
            client, order.id,
            {"credit_note": {"amount": "30.00", "reason": "damaged_goods", "notes": "Two boxes crushed"}},
            seller_headers,
        )
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["total_cents"] == 7000
        assert data["original_total_cents"] == 10000
        assert data["total_credit_notes_cents"] == 3000
        assert data["remaining_amount_cents"] == 7000
        assert data["credit_notes"][0]["reason"] == "damaged_goods"
        assert data["credit_notes"][0]["reason_label"] == "Damaged Goods"

        txn = db_session.query(Transaction).one()
        assert txn.type == "credit_note"
        assert txn.amount_cents == -3000
        assert txn.payment_method == "credit_note"
        assert txn.related_order_id == order.id
        assert txn.reference.startswith("CN-")

    def test_credit_note_after_partial_payment(self, client, seller_headers, make_order):
        order = make_order(10000)
        patch(client, order.id, {"payment": {"amount": "40.00"}}, seller_headers)

        resp = patch(
            client, order.id,
            {"credit_note": {"amount": "60.00", "reason": "returned_goods", "notes": "Half returned"}},
            seller_headers,
        )
        data = resp.json["data"]
        assert data["total_cents"] == 4000
        assert data["remaining_amount_cents"] == 0
        assert data["payment_status"] == "paid"

    def test_credit_note_above_total_rejected_without_writes(self, client, seller_headers, make_order, db_session):
        order = make_order(10000)

        resp = patch(
            client, order.id,
            {"credit_note": {"amount": "100.01", "reason": "other", "notes": "Too much"}},
            seller_headers,
        )
        assert resp.status_code == 400

        db_session.expire_all()
        fresh = db_session.get(Order, order.id)
        assert fresh.total_cents == 10000
        assert fresh.total_credit_notes_cents == 0
        assert db_session.query(CreditNote).count() == 0
        assert db_session.query(Transaction).count() == 0

    @pytest.mark.parametrize(
        "body",
        [
            {"amount": "10.00", "reason": "other"},
            {"amount": "10.00", "reason": "bad_luck", "notes": "x"},
            {"amount": "0", "reason": "other", "notes": "x"},
        ],
    )
    def test_invalid_credit_notes(self, client, seller_headers, make_order, body):
        order = make_order(10000)
        assert patch(client, order.id, {"credit_note": body}, seller_headers).status_code == 400

    def test_cancelled_order_cannot_be_credited(self, client, seller_headers, make_order):
        order = make_order(10000, status="cancelled")
        resp = patch(
            client, order.id,
            {"credit_note": {"amount": "10.00", "reason": "other", "notes": "x"}},
            seller_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# STATUS
# =============================================================================


class TestOrderStatus:

    def test_forward_transitions(self, client, seller_headers, make_order):
        order = make_order(10000)
        for status in ("confirmed", "prepared", "delivered"):
            resp = patch(client, order.id, {"status": status}, seller_headers)
            assert resp.status_code == 200
            assert resp.json["data"]["status"] == status

    def test_backward_transition_rejected(self, client, seller_headers, make_order):
        order = make_order(10000, status="confirmed")
        assert patch(client, order.id, {"status": "pending"}, seller_headers).status_code == 400

    def test_delivered_cannot_be_cancelled(self, client, seller_headers, make_order):
        order = make_order(10000, status="delivered")
        assert patch(client, order.id, {"status": "cancelled"}, seller_headers).status_code == 400

    def test_paid_order_cannot_be_cancelled(self, client, seller_headers, make_order):
        order = make_order(10000)
        patch(client, order.id, {"payment": {"amount": "1.00"}}, seller_headers)

        resp = patch(client, order.id, {"status": "cancelled"}, seller_headers)
        assert resp.status_code == 400

    def test_cancel_notifies_customer(self, client, seller_headers, customer, make_order, db_session):
        order = make_order(10000)
        resp = patch(client, order.id, {"status": "cancelled"}, seller_headers)
        assert resp.status_code == 200

        notes = db_session.query(Notification).filter_by(user_id=customer.user_id).all()
        assert [n.type for n in notes] == ["order_updated"]

    def test_overdue_flag(self, client, seller_headers, make_order):
        order = make_order(10000)

        resp = patch(client, order.id, {"payment_status": "overdue"}, seller_headers)
        assert resp.json["data"]["payment_status"] == "overdue"

        # Any other value must match what payments say
        assert patch(client, order.id, {"payment_status": "paid"}, seller_headers).status_code == 400
        resp = patch(client, order.id, {"payment_status": "pending"}, seller_headers)
        assert resp.json["data"]["payment_status"] == "pending"

    def test_paid_order_cannot_be_overdue(self, client, seller_headers, make_order):
        order = make_order(1000)
        patch(client, order.id, {"payment": {"amount": "10.00"}}, seller_headers)
        assert patch(client, order.id, {"payment_status": "overdue"}, seller_headers).status_code == 400

    def test_details_update(self, client, seller_headers, make_order):
        order = make_order(1000)
        resp = patch(
            client, order.id,
            {"notes": "Back door", "delivery_date": "2026-03-10"},
            seller_headers,
        )
        assert resp.json["data"]["notes"] == "Back door"
        assert resp.json["data"]["delivery_date"] == "2026-03-10T00:00:00Z"

    def test_empty_patch(self, client, seller_headers, make_order):
        order = make_order(1000)
        assert patch(client, order.id, {}, seller_headers).status_code == 400


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteOrder:

    def test_pending_order_without_money_can_be_deleted(self, client, seller_headers, make_order, db_session):
        order = make_order(1000)
        order_id = order.id

        resp = client.delete(f"/api/orders/{order_id}", headers=seller_headers)
        assert resp.status_code == 200
        assert db_session.get(Order, order_id) is None

    def test_confirmed_order_cannot_be_deleted(self, client, seller_headers, make_order):
        order = make_order(1000, status="confirmed")
        assert client.delete(f"/api/orders/{order.id}", headers=seller_headers).status_code == 400

    def test_paid_order_cannot_be_deleted(self, client, seller_headers, make_order):
        order = make_order(1000)
        patch(client, order.id, {"payment": {"amount": "5.00"}}, seller_headers)
        assert client.delete(f"/api/orders/{order.id}", headers=seller_headers).status_code == 400

    def test_other_seller_cannot_delete(self, client, other_seller_headers, make_order):
        order = make_order(1000)
        assert client.delete(f"/api/orders/{order.id}", headers=other_seller_headers).status_code == 403
