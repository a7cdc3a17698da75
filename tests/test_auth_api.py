from clinicore.models.error_log import ErrorLog
from clinicore.models.tenant import TenantStatus


class TestRegisterAndLogin:
    def test_register_then_login(self, client):
        res = client.post(
            "/api/auth/register-tenant",
            json={
                "tenant_name": "Blue Nile Dental",
                "tenant_code": "bnd01",
                "admin_name": "Sara",
                "email": "sara@example.com",
                "password": "long-enough-1",
                "confirm_password": "long-enough-1",
            },
        )
        assert res.status_code == 201, res.text
        assert res.json()["data"]["tenant_code"] == "BND01"

        res = client.post("/api/auth/login",
                          json={"tenant_code": "BND01", "email": "sara@example.com", "password": "long-enough-1"})
        assert res.status_code == 200
        tokens = res.json()["data"]
        assert tokens["token_type"] == "bearer"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert me.json()["data"]["role"] == "clinic_admin"

    def test_password_mismatch(self, client):
        res = client.post(
            "/api/auth/register-tenant",
            json={
                "tenant_name": "Blue Nile Dental",
                "admin_name": "Sara",
                "email": "sara@example.com",
                "password": "long-enough-1",
                "confirm_password": "long-enough-2",
            },
        )
        assert res.status_code == 400

    def test_duplicate_tenant_code(self, client, tenant):
        res = client.post(
            "/api/auth/register-tenant",
            json={
                "tenant_name": "Another",
                "tenant_code": tenant.code,
                "admin_name": "X",
                "email": "x@example.com",
                "password": "long-enough-1",
                "confirm_password": "long-enough-1",
            },
        )
        assert res.status_code == 400
        assert res.json()["error"]["msg"] == "Tenant code already exists"

    def test_wrong_password(self, client, tenant):
        res = client.post("/api/auth/login",
                          json={"tenant_code": tenant.code, "email": "admin@example.com", "password": "nope"})
        assert res.status_code == 401
        assert res.json() == {"ok": False, "error": {"msg": "Invalid credentials", "code": None, "details": None}}

    def test_malformed_hash_is_a_failed_login(self, client, db, make_user):
        user = make_user("legacy@example.com")
        user.password_hash = "md5$not-a-bcrypt-hash"
        db.commit()
        res = client.post("/api/auth/login",
                          json={"tenant_code": "KRT001", "email": "legacy@example.com", "password": "secret-pass-1"})
        assert res.status_code == 401


class TestTokens:
    def _tokens(self, client):
        return client.post("/api/auth/login",
                           json={"tenant_code": "KRT001", "email": "admin@example.com",
                                 "password": "secret-pass-1"}).json()["data"]

    def test_missing_token(self, client, tenant):
        assert client.get("/api/auth/me").status_code == 401

    def test_refresh_issues_new_pair(self, client, tenant):
        tokens = self._tokens(client)
        res = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert res.status_code == 200
        assert res.json()["data"]["access_token"]

    def test_access_token_cannot_refresh(self, client, tenant):
        tokens = self._tokens(client)
        res = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert res.status_code == 401

    def test_refresh_token_cannot_call_api(self, client, tenant):
        tokens = self._tokens(client)
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert res.status_code == 401

    def test_suspended_tenant_is_locked_out(self, client, db, tenant, admin_headers):
        tenant.status = TenantStatus.SUSPENDED
        db.commit()
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 403


class TestUsers:
    def test_admin_adds_staff(self, client, admin_headers, login):
        res = client.post("/api/auth/users",
                          json={"name": "Huda", "email": "huda@example.com", "password": "secret-pass-1",
                                "role": "finance_admin"},
                          headers=admin_headers)
        assert res.status_code == 201, res.text
        assert res.json()["data"]["clinic_id"] == 1
        assert login("huda@example.com")

    def test_staff_cannot_add_users(self, client, staff_headers):
        res = client.post("/api/auth/users",
                          json={"name": "Huda", "email": "huda@example.com", "password": "secret-pass-1"},
                          headers=staff_headers)
        assert res.status_code == 403

    def test_duplicate_email(self, client, admin_headers):
        res = client.post("/api/auth/users",
                          json={"name": "Dup", "email": "admin@example.com", "password": "secret-pass-1"},
                          headers=admin_headers)
        assert res.status_code == 409


class TestSystem:
    def test_health(self, client):
        res = client.get("/api/system/health")
        assert res.json()["data"]["status"] == "ok"

    def test_client_error_is_stored(self, client, db):
        res = client.post("/api/system/client-error",
                          json={"message": "Cannot read property 'id' of undefined", "page_url": "/payments"})
        assert res.status_code == 200
        row = db.query(ErrorLog).one()
        assert row.error_source == "frontend"
        assert row.endpoint == "/payments"
