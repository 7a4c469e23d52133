from praxis.constants import ROLE_ADMIN
from tests.web.conftest import TEST_PASSWORD, create_user_in_db, get_audit_logs, get_user_from_db, login


def _admin_client(client, test_engine):
    create_user_in_db(test_engine, "root", role=ROLE_ADMIN)
    login(client, "root")
    return client


class TestAdminDeleteUser:
    def test_forbidden_for_regular_user(self, auth_client, test_engine):
        target = create_user_in_db(test_engine, "bob")
        response = auth_client.delete(f"/admin/users/{target.uuid}")
        assert response.status_code == 403
        assert get_user_from_db(test_engine, "bob") is not None

    def test_admin_deletes_user(self, client, test_engine):
        create_user_in_db(test_engine, "root", role=ROLE_ADMIN)
        target = create_user_in_db(test_engine, "bob")
        login(client, "root")

        response = client.delete(f"/admin/users/{target.uuid}")

        assert response.json() == {"status": "ok"}
        assert get_user_from_db(test_engine, "bob") is None
        logs = get_audit_logs(test_engine, "user.delete")
        assert logs[0].entity_uuid == target.uuid
        assert "password_hash" not in logs[0].previous_state

    def test_unknown_user(self, client, test_engine):
        create_user_in_db(test_engine, "root", role=ROLE_ADMIN)
        login(client, "root")
        assert client.delete("/admin/users/missing").status_code == 404

    def test_requires_session(self, client):
        assert client.delete("/admin/users/anything").status_code == 401


class TestAdminListUsers:
    def test_forbidden_for_regular_user(self, auth_client):
        response = auth_client.get("/admin/users")
        assert response.status_code == 403
        assert response.json() == {"error": "forbidden"}

    def test_lists_users_without_secrets(self, client, test_engine):
        _admin_client(client, test_engine)
        create_user_in_db(test_engine, "bob")

        users = client.get("/admin/users").json()["users"]

        assert sorted(u["username"] for u in users) == ["bob", "root"]
        assert all("password_hash" not in u for u in users)


class TestAdminResetPassword:
    def test_forbidden_for_regular_user(self, auth_client, test_engine):
        target = create_user_in_db(test_engine, "bob")
        response = auth_client.post(f"/admin/users/{target.uuid}/reset-password", json={"new_password": "brandnew123"})
        assert response.status_code == 403
        assert login(auth_client, "bob").status_code == 200

    def test_reset_revokes_sessions_and_sets_password(self, client, test_engine):
        from starlette.testclient import TestClient

        from web.app import app

        target = create_user_in_db(test_engine, "bob")
        bob = TestClient(app)
        login(bob, "bob")
        _admin_client(client, test_engine)

        response = client.post(f"/admin/users/{target.uuid}/reset-password", json={"new_password": "brandnew123"})

        assert response.json() == {"status": "ok"}
        assert bob.get("/me").status_code == 401
        assert login(bob, "bob").status_code == 401
        assert login(bob, "bob", "brandnew123").status_code == 200
        logs = get_audit_logs(test_engine, "user.change_password")
        assert logs[0].entity_uuid == target.uuid
        assert logs[0].actor_username == "root"

    def test_unknown_user(self, client, test_engine):
        _admin_client(client, test_engine)
        response = client.post("/admin/users/missing/reset-password", json={"new_password": "brandnew123"})
        assert response.status_code == 404

    def test_weak_password_rejected(self, client, test_engine):
        target = create_user_in_db(test_engine, "bob")
        _admin_client(client, test_engine)

        response = client.post(f"/admin/users/{target.uuid}/reset-password", json={"new_password": "short"})

        assert response.status_code == 409
        assert login(client, "bob", TEST_PASSWORD).status_code == 200


class TestAdminAudit:
    def test_forbidden_for_regular_user(self, auth_client):
        assert auth_client.get("/admin/audit").status_code == 403

    def test_filters_by_event_type(self, client, test_engine):
        _admin_client(client, test_engine)
        target = create_user_in_db(test_engine, "bob")
        client.delete(f"/admin/users/{target.uuid}")

        events = client.get("/admin/audit", params={"event_type": "user.delete"}).json()["events"]

        assert len(events) == 1
        assert events[0]["entity_uuid"] == target.uuid
        assert events[0]["actor_username"] == "root"

    def test_limit_is_applied(self, client, test_engine):
        _admin_client(client, test_engine)
        for _ in range(3):
            login(client, "root")

        events = client.get("/admin/audit", params={"limit": 2}).json()["events"]

        assert len(events) == 2
