from datetime import date, datetime

import pytest

from clinicore.services.tenant_provisioning import provision_tenant_with_admin

RECEIPT = "https://files.example.com/receipts/r-1.jpg"


def _submit(client, headers, invoice_id, amount="4000.00", reference="BOK1234567890", **extra):
    body = {
        "invoice_id": invoice_id,
        "provider": extra.pop("provider", "BankOfKhartoum"),
        "reference_id": reference,
        "payer_name": "Amal Hassan",
        "amount": amount,
    }
    body.update(extra)
    return client.post("/api/payments", json=body, headers=headers)


def _invoice(client, headers, invoice_id):
    return client.get(f"/api/invoices/{invoice_id}", headers=headers).json()["data"]


@pytest.fixture
def pending_payment(client, staff_headers, sent_invoice):
    res = _submit(client, staff_headers, sent_invoice["id"])
    assert res.status_code == 201, res.text
    return res.json()["data"]


class TestSubmit:
    def test_creates_pending_payment_and_marks_invoice(self, client, admin_headers, sent_invoice, pending_payment):
        assert pending_payment["payment_status"] == "pending"
        assert pending_payment["payment_method"] == "bank_transfer"
        assert pending_payment["amount"] == "4000.00"
        assert pending_payment["payment_number"] == f"PAY-{date.today():%y%m}-000001"

        inv = _invoice(client, admin_headers, sent_invoice["id"])
        assert inv["status"] == "pending"
        # money only moves on confirmation
        assert inv["paid_amount"] == "0.00"
        assert inv["balance_amount"] == "10000.00"

    def test_amount_over_balance(self, client, staff_headers, sent_invoice):
        res = _submit(client, staff_headers, sent_invoice["id"], amount="10000.01", receipt_url=RECEIPT)
        assert res.status_code == 400
        assert "exceeds invoice balance" in res.json()["error"]["msg"]

    def test_non_positive_amount(self, client, staff_headers, sent_invoice):
        assert _submit(client, staff_headers, sent_invoice["id"], amount="0").status_code == 422

    def test_draft_invoice_not_payable(self, client, admin_headers, staff_headers):
        draft = client.post(
            "/api/invoices",
            json={"customer_type": "patient", "items": [{"description": "X-ray", "unit_price": "500.00"}]},
            headers=admin_headers,
        ).json()["data"]
        assert _submit(client, staff_headers, draft["id"], amount="100.00").status_code == 409

    def test_unknown_invoice(self, client, staff_headers):
        assert _submit(client, staff_headers, 12345).status_code == 404

    def test_bad_reference_format(self, client, staff_headers, sent_invoice):
        res = _submit(client, staff_headers, sent_invoice["id"], reference="FIB1234567890")
        assert res.status_code == 400
        assert "reference" in res.json()["error"]["msg"].lower()

    def test_receipt_required_above_threshold(self, client, staff_headers, sent_invoice):
        res = _submit(client, staff_headers, sent_invoice["id"], amount="5000.00")
        assert res.status_code == 400
        res = _submit(client, staff_headers, sent_invoice["id"], amount="5000.00", receipt_url=RECEIPT)
        assert res.status_code == 201

    def test_wallet_phone(self, client, staff_headers, sent_invoice):
        res = _submit(client, staff_headers, sent_invoice["id"], provider="ZainBede", reference="0912345678",
                      amount="100.00")
        assert res.status_code == 400

        res = _submit(client, staff_headers, sent_invoice["id"], provider="ZainBede", reference="0912345678",
                      amount="100.00", wallet_phone="0912345678")
        assert res.status_code == 422

        res = _submit(client, staff_headers, sent_invoice["id"], provider="ZainBede", reference="0912345678",
                      amount="100.00", wallet_phone="+249912345678")
        assert res.status_code == 201
        assert res.json()["data"]["payment_method"] == "mobile_wallet"

    def test_duplicate_reference(self, client, staff_headers, finance_headers, sent_invoice, pending_payment):
        res = _submit(client, staff_headers, sent_invoice["id"], amount="100.00")
        assert res.status_code == 409

        client.post(f"/api/payments/admin/{pending_payment['id']}/reject", json={"reason": "Not found in statement"},
                    headers=finance_headers)
        # a rejected reference may be resubmitted
        assert _submit(client, staff_headers, sent_invoice["id"], amount="100.00").status_code == 201

    @pytest.mark.parametrize("reference", ["BOK1234567890\n", " BOK1234567890 ", "\tBOK1234567890"])
    def test_padded_reference_is_still_a_duplicate(self, client, staff_headers, sent_invoice, pending_payment,
                                                   reference):
        res = _submit(client, staff_headers, sent_invoice["id"], amount="100.00", reference=reference)
        assert res.status_code == 409

    def test_reference_and_payer_are_trimmed(self, client, staff_headers, sent_invoice):
        res = _submit(client, staff_headers, sent_invoice["id"], amount="100.00", reference=" BOK9876543210\n",
                      payer_name="  Amal Hassan ")
        assert res.status_code == 201, res.text
        assert res.json()["data"]["reference_id"] == "BOK9876543210"
        assert res.json()["data"]["payer_name"] == "Amal Hassan"

    def test_blank_payer_name(self, client, staff_headers, sent_invoice):
        assert _submit(client, staff_headers, sent_invoice["id"], payer_name="   ").status_code == 422


class TestConfirm:
    def test_partial_then_full(self, client, admin_headers, staff_headers, finance_headers, sent_invoice,
                               pending_payment):
        res = client.post(f"/api/payments/admin/{pending_payment['id']}/confirm",
                          json={"admin_notes": "Matched statement"}, headers=finance_headers)
        assert res.status_code == 200, res.text
        confirmed = res.json()["data"]
        assert confirmed["payment_status"] == "confirmed"
        assert confirmed["admin_notes"] == "Matched statement"
        assert confirmed["reviewed_by"] is not None
        assert confirmed["reviewed_at"] is not None

        inv = _invoice(client, admin_headers, sent_invoice["id"])
        assert inv["status"] == "partially_paid"
        assert inv["paid_amount"] == "4000.00"
        assert inv["balance_amount"] == "6000.00"
        assert inv["paid_date"] is None

        second = _submit(client, staff_headers, sent_invoice["id"], amount="6000.00", reference="BOK9999999999",
                         receipt_url=RECEIPT).json()["data"]
        assert second["payment_number"].endswith("-000002")
        res = client.post(f"/api/payments/admin/{second['id']}/confirm", headers=finance_headers)
        assert res.status_code == 200

        inv = _invoice(client, admin_headers, sent_invoice["id"])
        assert inv["status"] == "paid"
        assert inv["balance_amount"] == "0.00"
        assert inv["paid_amount"] == "10000.00"
        assert inv["paid_date"] == datetime.utcnow().date().isoformat()

    def test_staff_cannot_confirm(self, client, staff_headers, pending_payment):
        res = client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=staff_headers)
        assert res.status_code == 403
        assert res.json()["error"]["msg"] == "Only finance administrators can confirm payments"

        res = client.get(f"/api/payments/{pending_payment['id']}", headers=staff_headers)
        assert res.json()["data"]["payment_status"] == "pending"

    def test_confirm_twice(self, client, finance_headers, pending_payment):
        url = f"/api/payments/admin/{pending_payment['id']}/confirm"
        assert client.post(url, headers=finance_headers).status_code == 200
        res = client.post(url, headers=finance_headers)
        assert res.status_code == 409
        assert res.json()["error"]["msg"] == "Payment cannot be confirmed. Current status: confirmed"

    def test_amount_no_longer_fits_balance(self, client, admin_headers, staff_headers, finance_headers,
                                           sent_invoice):
        first = _submit(client, staff_headers, sent_invoice["id"], amount="6000.00", reference="BOK1111111111",
                        receipt_url=RECEIPT).json()["data"]
        second = _submit(client, staff_headers, sent_invoice["id"], amount="6000.00", reference="BOK2222222222",
                         receipt_url=RECEIPT).json()["data"]

        assert client.post(f"/api/payments/admin/{first['id']}/confirm", headers=finance_headers).status_code == 200
        res = client.post(f"/api/payments/admin/{second['id']}/confirm", headers=finance_headers)
        assert res.status_code == 409

        inv = _invoice(client, admin_headers, sent_invoice["id"])
        assert inv["paid_amount"] == "6000.00"
        assert inv["balance_amount"] == "4000.00"
        still = client.get(f"/api/payments/{second['id']}", headers=finance_headers).json()["data"]
        assert still["payment_status"] == "pending"

    def test_unknown_payment(self, client, finance_headers):
        assert client.post("/api/payments/admin/999/confirm", headers=finance_headers).status_code == 404


class TestReject:
    def test_restores_sent_status(self, client, admin_headers, finance_headers, sent_invoice, pending_payment):
        res = client.post(f"/api/payments/admin/{pending_payment['id']}/reject",
                          json={"reason": "Reference not in statement"}, headers=finance_headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["payment_status"] == "rejected"
        assert data["admin_notes"] == "Reference not in statement"

        inv = _invoice(client, admin_headers, sent_invoice["id"])
        assert inv["status"] == "sent"
        assert inv["paid_amount"] == "0.00"

    def test_keeps_pending_while_other_payments_wait(self, client, admin_headers, staff_headers, finance_headers,
                                                     sent_invoice, pending_payment):
        _submit(client, staff_headers, sent_invoice["id"], amount="100.00", reference="BOK5555555555")
        client.post(f"/api/payments/admin/{pending_payment['id']}/reject", json={"reason": "dup"},
                    headers=finance_headers)
        assert _invoice(client, admin_headers, sent_invoice["id"])["status"] == "pending"

    def test_restores_partially_paid(self, client, admin_headers, staff_headers, finance_headers, sent_invoice,
                                     pending_payment):
        client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=finance_headers)
        other = _submit(client, staff_headers, sent_invoice["id"], amount="100.00",
                        reference="BOK7777777777").json()["data"]
        client.post(f"/api/payments/admin/{other['id']}/reject", json={"reason": "bounced"}, headers=finance_headers)
        assert _invoice(client, admin_headers, sent_invoice["id"])["status"] == "partially_paid"

    def test_reason_required(self, client, finance_headers, pending_payment):
        res = client.post(f"/api/payments/admin/{pending_payment['id']}/reject", json={"reason": ""},
                          headers=finance_headers)
        assert res.status_code == 422

    def test_rejected_is_terminal(self, client, finance_headers, pending_payment):
        client.post(f"/api/payments/admin/{pending_payment['id']}/reject", json={"reason": "no"},
                    headers=finance_headers)
        res = client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=finance_headers)
        assert res.status_code == 409


class TestUpdate:
    def test_submitter_updates_pending_payment(self, client, staff_headers, pending_payment):
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={"amount": "3500.00"},
                           headers=staff_headers)
        assert res.status_code == 200, res.text
        assert res.json()["data"]["amount"] == "3500.00"

        log = client.get(f"/api/payments/{pending_payment['id']}/audit-log", headers=staff_headers).json()["data"]
        assert log[0]["action"] == "updated"
        assert log[0]["changes"] == {"amount": {"from": "4000.00", "to": "3500.00"}}

    def test_invalid_update_is_rolled_back(self, client, staff_headers, pending_payment):
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={"reference_id": "nope"},
                           headers=staff_headers)
        assert res.status_code == 400
        res = client.get(f"/api/payments/{pending_payment['id']}", headers=staff_headers)
        assert res.json()["data"]["reference_id"] == "BOK1234567890"

    @pytest.mark.parametrize("field", ["amount", "payer_name", "reference_id"])
    def test_required_field_cannot_be_nulled(self, client, staff_headers, pending_payment, field):
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={field: None}, headers=staff_headers)
        assert res.status_code == 422
        assert res.json()["error"]["code"] == "validation_error"
        current = client.get(f"/api/payments/{pending_payment['id']}", headers=staff_headers).json()["data"]
        assert current[field] == pending_payment[field]

    def test_padded_reference_update_is_trimmed(self, client, staff_headers, pending_payment):
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={"reference_id": "BOK1234567891\n"},
                           headers=staff_headers)
        assert res.status_code == 200, res.text
        assert res.json()["data"]["reference_id"] == "BOK1234567891"

    def test_other_staff_cannot_update(self, client, other_staff_headers, pending_payment):
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={"payer_name": "Someone"},
                           headers=other_staff_headers)
        assert res.status_code == 403

    def test_confirmed_payment_is_frozen(self, client, staff_headers, finance_headers, pending_payment):
        client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=finance_headers)
        res = client.patch(f"/api/payments/{pending_payment['id']}", json={"payer_name": "Someone"},
                           headers=staff_headers)
        assert res.status_code == 409


class TestQueriesAndAudit:
    def test_audit_log_newest_first(self, client, finance_headers, pending_payment):
        client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=finance_headers)
        log = client.get(f"/api/payments/{pending_payment['id']}/audit-log",
                         headers=finance_headers).json()["data"]
        assert [row["action"] for row in log] == ["confirmed", "created"]
        assert log[0]["previous_status"] == "pending"
        assert log[0]["new_status"] == "confirmed"
        assert log[1]["changes"] == {"provider": "BankOfKhartoum", "amount": "4000.00",
                                     "reference_id": "BOK1234567890"}
        assert log[1]["ip_address"] == "testclient"

    def test_list_visibility(self, client, staff_headers, other_staff_headers, finance_headers, sent_invoice,
                             pending_payment):
        _submit(client, other_staff_headers, sent_invoice["id"], amount="100.00", reference="BOK3333333333")

        own = client.get("/api/payments", headers=staff_headers).json()["data"]
        assert [p["id"] for p in own] == [pending_payment["id"]]

        everything = client.get("/api/payments", headers=finance_headers).json()
        assert everything["meta"]["total"] == 2

        res = client.get(f"/api/payments/{pending_payment['id']}", headers=other_staff_headers)
        assert res.status_code == 403

    def test_pending_queue_oldest_first_and_reviewer_only(self, client, staff_headers, finance_headers,
                                                          sent_invoice, pending_payment):
        later = _submit(client, staff_headers, sent_invoice["id"], amount="100.00",
                        reference="BOK4444444444").json()["data"]
        queue = client.get("/api/payments/admin/pending", headers=finance_headers).json()["data"]
        assert [p["id"] for p in queue] == [pending_payment["id"], later["id"]]

        assert client.get("/api/payments/admin/pending", headers=staff_headers).status_code == 403

    def test_filters(self, client, finance_headers, pending_payment):
        res = client.get("/api/payments", params={"payer_name": "amal", "provider": "BankOfKhartoum"},
                         headers=finance_headers)
        assert len(res.json()["data"]) == 1
        res = client.get("/api/payments", params={"status": "confirmed"}, headers=finance_headers)
        assert res.json()["data"] == []

    def test_instructions(self, client, staff_headers):
        res = client.get("/api/payments/instructions/ZainBede", headers=staff_headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["payment_method"] == "mobile_wallet"
        assert data["wallet_phone_required"] is True
        assert data["receipt_threshold"] == "3000"


class TestTenantScope:
    def test_other_tenant_cannot_confirm(self, client, db, login, pending_payment):
        provision_tenant_with_admin(
            db,
            tenant_name="Port Sudan Clinic",
            tenant_code="PZU003",
            subdomain=None,
            admin_name="Other",
            admin_email="boss@example.com",
            admin_password="secret-pass-1",
        )
        headers = login("boss@example.com", tenant_code="PZU003")
        assert client.post(f"/api/payments/admin/{pending_payment['id']}/confirm", headers=headers).status_code == 404
