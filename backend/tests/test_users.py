"""
Admin user management and dashboard stats tests.

Verifies:
- Only admins manage users and read stats (403 otherwise)
- Admins create seller and admin accounts that can log in
- Deactivation and password changes revoke open sessions
- Users with history are deactivated instead of deleted
- Stats totals cover users, customers, products, orders and money
"""

from datetime import datetime

import pytest

from conftest import PASSWORD, headers_for
from marketplace.models import Notification, SessionToken, User


def new_user_payload(**overrides):
    payload = {
        "email": "new-seller@test.local",
        "password": PASSWORD,
        "role": "seller",
        "display_name": "Nina New",
        "business_name": "New Cuts",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# ACCESS
# =============================================================================


class TestAdminOnly:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/users/1"),
            ("PUT", "/api/users/1"),
            ("DELETE", "/api/users/1"),
            ("GET", "/api/admin/stats"),
        ],
    )
    def test_seller_and_customer_forbidden(self, client, seller_headers, customer_headers, method, path):
        for headers in (seller_headers, customer_headers):
            resp = getattr(client, method.lower())(path, json={}, headers=headers)
            assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# CREATE / LIST / GET
# =============================================================================


class TestCreateUsers:

    def test_admin_creates_seller_who_can_log_in(self, client, admin_headers, db_session):
        resp = client.post("/api/users", json=new_user_payload(email="New-Seller@Test.local "), headers=admin_headers)

        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["email"] == "new-seller@test.local"
        assert data["role"] == "seller"
        assert data["business_name"] == "New Cuts"
        assert data["seller_id"] is None
        assert data["is_active"] is True

        login = client.post("/api/auth/login", json={"email": "new-seller@test.local", "password": PASSWORD})
        assert login.status_code == 200
        assert login.json["data"]["principal"]["role"] == "seller"

    def test_admin_creates_admin(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json=new_user_payload(email="ops@test.local", role="admin", business_name=None),
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["role"] == "admin"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"role": "customer"},
            {"role": "owner"},
            {"role": None},
            {"email": ""},
            {"password": "123"},
            {"password": None},
            {"is_active": "yes"},
        ],
    )
    def test_invalid_payloads(self, client, admin_headers, db_session, overrides):
        resp = client.post("/api/users", json=new_user_payload(**overrides), headers=admin_headers)
        assert resp.status_code == 400
        assert db_session.query(User).filter_by(email="new-seller@test.local").count() == 0

    def test_duplicate_email(self, client, admin_headers, seller):
        resp = client.post("/api/users", json=new_user_payload(email="seller@test.local"), headers=admin_headers)
        assert resp.status_code == 409


class TestListUsers:

    def test_lists_admins_and_sellers_by_default(self, client, admin_headers, seller, other_seller, customer):
        resp = client.get("/api/users", headers=admin_headers)

        assert resp.status_code == 200
        emails = {u["email"] for u in resp.json["data"]}
        assert emails == {"admin@test.local", "seller@test.local", "rival@test.local"}

    def test_role_filter_and_search(self, client, admin_headers, seller, other_seller, customer):
        customers = client.get("/api/users?role=customer", headers=admin_headers).json["data"]
        assert [u["email"] for u in customers] == ["bistro@test.local"]
        assert customers[0]["customer_id"] == customer.id

        found = client.get("/api/users?search=rival", headers=admin_headers).json["data"]
        assert [u["email"] for u in found] == ["rival@test.local"]

        assert client.get("/api/users?role=owner", headers=admin_headers).status_code == 400

    def test_inactive_filter(self, client, admin_headers, seller, other_seller, db_session):
        other_seller.is_active = False
        db_session.commit()

        active = client.get("/api/users?include_inactive=false", headers=admin_headers).json["data"]
        assert "rival@test.local" not in {u["email"] for u in active}

    def test_get_user(self, client, admin_headers, seller):
        resp = client.get(f"/api/users/{seller.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["display_name"] == "Sam Seller"

        assert client.get("/api/users/99999", headers=admin_headers).status_code == 404


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateUsers:

    def test_update_profile_fields(self, client, admin_headers, seller):
        resp = client.put(
            f"/api/users/{seller.id}",
            json={"display_name": "Samuel", "business_name": "Prime Meats Ltd", "email": "SAM@test.local"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["display_name"] == "Samuel"
        assert data["business_name"] == "Prime Meats Ltd"
        assert data["email"] == "sam@test.local"

    def test_deactivation_revokes_sessions(self, client, admin_headers, seller, seller_headers, db_session):
        assert client.get("/api/auth/session", headers=seller_headers).status_code == 200

        resp = client.put(f"/api/users/{seller.id}", json={"is_active": False}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["is_active"] is False
        assert client.get("/api/auth/session", headers=seller_headers).status_code == 401
        session = db_session.query(SessionToken).filter_by(user_id=seller.id).one()
        assert session.is_revoked is True
        assert session.revoked_reason == "User deactivated"

        login = client.post("/api/auth/login", json={"email": "seller@test.local", "password": PASSWORD})
        assert login.status_code == 401

    def test_password_change_revokes_sessions(self, client, admin_headers, seller, seller_headers):
        resp = client.put(f"/api/users/{seller.id}", json={"password": "Another456!"}, headers=admin_headers)

        assert resp.status_code == 200
        assert client.get("/api/auth/session", headers=seller_headers).status_code == 401
        old = client.post("/api/auth/login", json={"email": "seller@test.local", "password": PASSWORD})
        assert old.status_code == 401
        new = client.post("/api/auth/login", json={"email": "seller@test.local", "password": "Another456!"})
        assert new.status_code == 200

    def test_weak_password_rejected(self, client, admin_headers, seller):
        resp = client.put(f"/api/users/{seller.id}", json={"password": "123"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_email_clash(self, client, admin_headers, seller, other_seller):
        resp = client.put(f"/api/users/{seller.id}", json={"email": "rival@test.local"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_admin_cannot_lock_themselves_out(self, client, admin, admin_headers):
        for body in ({"is_active": False}, {"role": "seller"}):
            resp = client.put(f"/api/users/{admin.id}", json=body, headers=admin_headers)
            assert resp.status_code == 400
        assert client.get("/api/auth/session", headers=admin_headers).status_code == 200

    def test_customer_logins_are_not_managed_here(self, client, admin_headers, customer):
        resp = client.put(f"/api/users/{customer.user_id}", json={"display_name": "X"}, headers=admin_headers)
        assert resp.status_code == 400
        assert "/api/customers" in resp.json["error"]

    def test_seller_with_customers_cannot_become_admin(self, client, admin_headers, seller, customer):
        resp = client.put(f"/api/users/{seller.id}", json={"role": "admin"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_seller_without_records_can_become_admin(self, client, admin_headers, other_seller):
        resp = client.put(f"/api/users/{other_seller.id}", json={"role": "admin"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["role"] == "admin"


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteUsers:

    def test_user_without_history_is_deleted(self, client, admin_headers, other_seller, db_session):
        headers_for(other_seller)
        db_session.add(Notification(user_id=other_seller.id, type="system", title="Welcome", message="Hi"))
        db_session.commit()
        user_id = other_seller.id

        resp = client.delete(f"/api/users/{user_id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"] == {"deleted": True, "deactivated": False}
        db_session.expire_all()
        assert db_session.get(User, user_id) is None
        assert db_session.query(SessionToken).filter_by(user_id=user_id).count() == 0

    def test_seller_with_customers_is_deactivated(self, client, admin_headers, seller, customer, seller_headers, db_session):
        resp = client.delete(f"/api/users/{seller.id}", headers=admin_headers)

        assert resp.json["data"] == {"deleted": False, "deactivated": True}
        db_session.expire_all()
        assert db_session.get(User, seller.id).is_active is False
        assert client.get("/api/auth/session", headers=seller_headers).status_code == 401

    def test_cannot_delete_self(self, client, admin, admin_headers):
        resp = client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_user(self, client, admin_headers):
        assert client.delete("/api/users/99999", headers=admin_headers).status_code == 404


# =============================================================================
# STATS
# =============================================================================


class TestAdminStats:

    def test_totals(self, client, admin_headers, seller_headers, seller, other_seller, customer, other_customer, make_order):
        first = make_order(10000, created_at=datetime(2026, 3, 2, 9, 0))
        client.patch(f"/api/orders/{first.id}", json={"payment": {"amount": "40.00"}}, headers=seller_headers)
        make_order(5000, created_at=datetime(2026, 3, 4, 9, 0))
        make_order(7000, created_at=datetime(2026, 3, 3, 9, 0), status="cancelled")

        resp = client.get("/api/admin/stats", headers=admin_headers)

        assert resp.status_code == 200
        data = resp.json["data"]
        totals = data["totals"]
        assert totals["admins"] == 1
        assert totals["sellers"] == 2
        assert totals["customer_users"] == 2
        assert totals["customers"] == 2
        assert totals["products"] == 2
        assert totals["orders"] == 3
        assert totals["transactions"] == 1
        assert totals["total_paid_cents"] == 4000
        # Cancelled orders carry no balance
        assert totals["total_outstanding_cents"] == 6000 + 5000
        assert totals["on_account_cents"] == 0
        assert data["orders_by_status"] == {"pending": 2, "cancelled": 1}

    def test_recent_lists_and_breakdown(self, client, admin_headers, seller, other_seller, customer, other_customer, make_order):
        make_order(1000, created_at=datetime(2026, 3, 1, 9, 0))
        latest = make_order(2000, created_at=datetime(2026, 3, 9, 9, 0))

        data = client.get("/api/admin/stats", headers=admin_headers).json["data"]

        assert data["recent_orders"][0]["id"] == latest.id
        assert data["recent_orders"][0]["seller_name"] == "Prime Meats"
        assert data["recent_orders"][0]["customer_name"] == "Corner Bistro"
        assert {s["email"] for s in data["recent_sellers"]} == {"seller@test.local", "rival@test.local"}
        breakdown = {row["seller_name"]: row["customer_count"] for row in data["seller_customer_breakdown"]}
        assert breakdown == {"Prime Meats": 1, "Rival Butchers": 1}

    def test_empty_marketplace(self, client, admin_headers):
        totals = client.get("/api/admin/stats", headers=admin_headers).json["data"]["totals"]
        assert totals["orders"] == 0
        assert totals["total_paid_cents"] == 0
        assert totals["sellers"] == 0
