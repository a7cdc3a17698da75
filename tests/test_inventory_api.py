from datetime import date, timedelta

import pytest

from clinicore.models.inventory import Inventory
from clinicore.models.user import UserRole
from clinicore.services.tenant_provisioning import provision_tenant_with_admin


def _txn(client, headers, product_id, quantity, **extra):
    body = {"product_id": product_id, "transaction_type": extra.pop("transaction_type", "purchase"),
            "quantity": quantity}
    body.update(extra)
    return client.post("/api/inventory/transactions", json=body, headers=headers)


def _ledger_sum(client, headers, inventory_id):
    res = client.get("/api/inventory/transactions", params={"inventory_id": inventory_id}, headers=headers)
    assert res.status_code == 200
    return sum(t["quantity"] for t in res.json()["data"])


class TestCreateInventory:
    def test_opening_stock_is_written_to_ledger(self, client, admin_headers, inventory):
        assert inventory["current_stock"] == 20
        assert inventory["status"] == "active"
        assert inventory["average_cost"] == "10.00"  # product cost price
        assert _ledger_sum(client, admin_headers, inventory["id"]) == 20

    def test_duplicate_for_same_clinic_and_product(self, client, admin_headers, inventory, product):
        res = client.post("/api/inventory", json={"product_id": product["id"]}, headers=admin_headers)
        assert res.status_code == 409
        assert res.json()["ok"] is False

    def test_unknown_product(self, client, admin_headers):
        res = client.post("/api/inventory", json={"product_id": 999}, headers=admin_headers)
        assert res.status_code == 404

    def test_zero_opening_stock_is_out_of_stock(self, client, admin_headers, product):
        res = client.post("/api/inventory", json={"product_id": product["id"], "minimum_stock": 5},
                          headers=admin_headers)
        assert res.status_code == 201
        assert res.json()["data"]["status"] == "out_of_stock"

    def test_staff_cannot_create(self, client, staff_headers, product):
        res = client.post("/api/inventory", json={"product_id": product["id"]}, headers=staff_headers)
        assert res.status_code == 403


class TestTransactions:
    def test_purchase_sale_and_ledger_balance(self, client, staff_headers, admin_headers, inventory, product):
        res = _txn(client, staff_headers, product["id"], 10, unit_cost="16.00")
        assert res.status_code == 201, res.text
        txn = res.json()["data"]
        assert txn["balance_after"] == 30
        assert txn["total_cost"] == "160.00"

        res = _txn(client, staff_headers, product["id"], -25, transaction_type="sale")
        assert res.status_code == 201
        assert res.json()["data"]["balance_after"] == 5
        assert res.json()["data"]["total_cost"] is None

        inv = client.get(f"/api/inventory/{inventory['id']}", headers=admin_headers).json()["data"]
        assert inv["current_stock"] == 5
        assert inv["status"] == "low_stock"
        # (10.00 * 20 + 16.00 * 10) / 30
        assert inv["average_cost"] == "12.00"
        assert inv["last_cost"] == "16.00"
        assert _ledger_sum(client, admin_headers, inventory["id"]) == inv["current_stock"]

    def test_insufficient_stock_leaves_no_trace(self, client, admin_headers, inventory, product):
        res = _txn(client, admin_headers, product["id"], -21, transaction_type="sale")
        assert res.status_code == 400
        assert "Insufficient stock" in res.json()["error"]["msg"]

        inv = client.get(f"/api/inventory/{inventory['id']}", headers=admin_headers).json()["data"]
        assert inv["current_stock"] == 20
        listing = client.get("/api/inventory/transactions", headers=admin_headers).json()["data"]
        assert len(listing) == 1

    def test_sell_everything_is_out_of_stock(self, client, admin_headers, inventory, product):
        res = _txn(client, admin_headers, product["id"], -20, transaction_type="sale")
        assert res.status_code == 201
        inv = client.get(f"/api/inventory/{inventory['id']}", headers=admin_headers).json()["data"]
        assert inv["status"] == "out_of_stock"

    def test_zero_quantity_is_rejected(self, client, admin_headers, inventory, product):
        res = _txn(client, admin_headers, product["id"], 0)
        assert res.status_code == 422
        assert res.json()["error"]["details"]

    def test_no_inventory_for_product(self, client, admin_headers, product):
        res = _txn(client, admin_headers, product["id"], 5)
        assert res.status_code == 404

    def test_transactions_newest_first(self, client, admin_headers, inventory, product):
        _txn(client, admin_headers, product["id"], 1)
        _txn(client, admin_headers, product["id"], 2)
        rows = client.get("/api/inventory/transactions", headers=admin_headers).json()["data"]
        assert [r["quantity"] for r in rows] == [2, 1, 20]

    def test_filter_by_type(self, client, admin_headers, inventory, product):
        _txn(client, admin_headers, product["id"], -1, transaction_type="waste")
        rows = client.get("/api/inventory/transactions", params={"transaction_type": "waste"},
                          headers=admin_headers).json()["data"]
        assert len(rows) == 1
        assert rows[0]["quantity"] == -1


class TestAdjustAndUpdate:
    def test_adjust_writes_adjustment_with_reason(self, client, admin_headers, inventory):
        res = client.post(f"/api/inventory/{inventory['id']}/adjust",
                          json={"adjustment": -3, "reason": "Damaged in storage"},
                          headers=admin_headers)
        assert res.status_code == 201
        txn = res.json()["data"]
        assert txn["transaction_type"] == "adjustment"
        assert txn["notes"] == "Damaged in storage"
        assert txn["balance_after"] == 17

    def test_adjust_below_zero(self, client, admin_headers, inventory):
        res = client.post(f"/api/inventory/{inventory['id']}/adjust",
                          json={"adjustment": -50, "reason": "count"},
                          headers=admin_headers)
        assert res.status_code == 400

    def test_update_cannot_touch_stock(self, client, admin_headers, inventory):
        res = client.patch(f"/api/inventory/{inventory['id']}",
                           json={"current_stock": 999, "minimum_stock": 25},
                           headers=admin_headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["current_stock"] == 20
        assert data["status"] == "low_stock"

    def test_update_expiry_marks_expired(self, client, admin_headers, inventory):
        past = (date.today() - timedelta(days=1)).isoformat()
        res = client.patch(f"/api/inventory/{inventory['id']}", json={"expiry_date": past}, headers=admin_headers)
        assert res.json()["data"]["status"] == "expired"

    @pytest.mark.parametrize("field", ["minimum_stock", "maximum_stock", "reserved_stock"])
    def test_stock_levels_cannot_be_nulled(self, client, admin_headers, inventory, field):
        res = client.patch(f"/api/inventory/{inventory['id']}", json={field: None}, headers=admin_headers)
        assert res.status_code == 422
        current = client.get(f"/api/inventory/{inventory['id']}", headers=admin_headers).json()["data"]
        assert current[field] == inventory[field]

    def test_location_can_be_cleared(self, client, admin_headers, inventory):
        client.patch(f"/api/inventory/{inventory['id']}", json={"location": "Shelf B"}, headers=admin_headers)
        res = client.patch(f"/api/inventory/{inventory['id']}", json={"location": None}, headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["data"]["location"] is None

    def test_remove_requires_empty_stock(self, client, admin_headers, inventory, product):
        assert client.delete(f"/api/inventory/{inventory['id']}", headers=admin_headers).status_code == 400

        _txn(client, admin_headers, product["id"], -20, transaction_type="sale")
        assert client.delete(f"/api/inventory/{inventory['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/inventory/{inventory['id']}", headers=admin_headers).status_code == 404


class TestAlertsAndStats:
    def test_expiry_lists(self, client, admin_headers, supplier):
        today = date.today()
        expiries = {"OLD": today - timedelta(days=3), "SOON": today + timedelta(days=10),
                    "LATER": today + timedelta(days=90)}
        for sku, expiry in expiries.items():
            p = client.post("/api/products", json={"supplier_id": supplier["id"], "name": sku, "sku": sku},
                            headers=admin_headers).json()["data"]
            client.post("/api/inventory",
                        json={"product_id": p["id"], "current_stock": 10, "expiry_date": expiry.isoformat()},
                        headers=admin_headers)

        expired = client.get("/api/inventory/expired", headers=admin_headers).json()["data"]
        assert [r["product"]["sku"] for r in expired] == ["OLD"]

        soon = client.get("/api/inventory/expiring-soon", headers=admin_headers).json()["data"]
        assert [r["product"]["sku"] for r in soon] == ["SOON"]

        wide = client.get("/api/inventory/expiring-soon", params={"days": 120}, headers=admin_headers).json()
        assert [r["product"]["sku"] for r in wide["data"]] == ["SOON", "LATER"]

    def test_status_filter_sees_lapsed_expiry(self, client, db, admin_headers, inventory):
        # expiry passes with no stock movement, so the stored status is still "active"
        db.query(Inventory).filter(Inventory.id == inventory["id"]).update(
            {Inventory.expiry_date: date.today() - timedelta(days=1)})
        db.commit()

        res = client.get("/api/inventory", params={"status": "expired"}, headers=admin_headers).json()
        assert [r["id"] for r in res["data"]] == [inventory["id"]]
        assert res["data"][0]["status"] == "expired"
        assert res["meta"] == {"total": 1}

        res = client.get("/api/inventory", params={"status": "active"}, headers=admin_headers).json()
        assert res["data"] == []
        assert res["meta"] == {"total": 0}

    def test_low_stock_and_stats(self, client, admin_headers, inventory, product):
        _txn(client, admin_headers, product["id"], -16, transaction_type="sale")
        low = client.get("/api/inventory/low-stock", headers=admin_headers).json()["data"]
        assert [r["id"] for r in low] == [inventory["id"]]

        stats = client.get("/api/inventory/stats", headers=admin_headers).json()["data"]
        assert stats["total_items"] == 1
        assert stats["low_stock_items"] == 1
        assert stats["out_of_stock_items"] == 0
        assert stats["expired_items"] == 0
        assert stats["total_value"] == "40.00"


class TestTenantIsolation:
    def test_other_tenant_cannot_see_inventory(self, client, db, inventory, login):
        provision_tenant_with_admin(
            db,
            tenant_name="Omdurman Clinic",
            tenant_code="OMD002",
            subdomain=None,
            admin_name="Other Admin",
            admin_email="admin@example.com",
            admin_password="secret-pass-1",
            admin_role=UserRole.CLINIC_ADMIN,
        )
        headers = login("admin@example.com", tenant_code="OMD002")

        assert client.get(f"/api/inventory/{inventory['id']}", headers=headers).status_code == 404
        assert client.get("/api/inventory", headers=headers).json()["data"] == []
