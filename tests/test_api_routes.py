"""
tests/test_api_routes.py -- Integration tests for the /api/v1/users routes.

These tests exercise the full stack: FastAPI routing -> authorization gate ->
AccountService -> UserStore -> response envelope and cookies. Unit tests of
the service cannot see the cookie scoping, the envelope or the gate wiring.

Coverage:
  - Register / login / refresh / logout: body shape, refresh cookie attributes
  - Authentication failures: missing, malformed, expired-shape and stale tokens
  - Profile read, partial update, password change, self deletion
  - Admin surface: 403 for USER, list/get/patch/delete for ADMIN
  - Error envelope: status/code/message, 400 for malformed bodies

Fixtures used (from conftest.py):
  - client: TestClient on a fresh in-memory database
  - admin: Session for an ADMIN account created out of band
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import API, PASSWORD, Session, register


def _delete_own(client: TestClient, session: Session, password: str | None):
    body = {} if password is None else {"password": password}
    return client.request("DELETE", f"{API}/users", json=body, headers=session.headers)


class TestRegister:
    def test_returns_201_with_session(self, client: TestClient) -> None:
        resp = client.post(
            f"{API}/users/register",
            json={"name": "alice", "email": "alice@x.com", "password": PASSWORD},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "success"
        assert body["data"]["user"] == {"id": 1, "name": "alice", "role": "USER"}
        assert body["data"]["accessToken"]
        assert "refreshToken" not in body["data"]
        assert resp.headers["cache-control"] == "no-store"

    def test_long_password_is_accepted(self, client: TestClient) -> None:
        password = "Passw0rd!" + "a" * 130
        resp = client.post(
            f"{API}/users/register",
            json={"name": "alice", "email": "alice@x.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        resp = client.post(f"{API}/users/login", json={"name": "alice", "password": password})
        assert resp.status_code == 200, resp.text

    def test_sets_scoped_httponly_refresh_cookie(self, client: TestClient) -> None:
        resp = client.post(
            f"{API}/users/register",
            json={"name": "alice", "email": "alice@x.com", "password": PASSWORD},
        )
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith("refreshToken=")
        assert "HttpOnly" in set_cookie
        assert "Path=/api/v1/users/refresh" in set_cookie
        assert "SameSite=strict" in set_cookie
        assert "Max-Age=2592000" in set_cookie

    def test_role_in_body_is_ignored(self, client: TestClient) -> None:
        resp = client.post(
            f"{API}/users/register",
            json={"name": "mallory", "email": "m@x.com", "password": PASSWORD, "role": "ADMIN"},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["user"]["role"] == "USER"

    def test_missing_field(self, client: TestClient) -> None:
        resp = client.post(f"{API}/users/register", json={"name": "alice", "password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json() == {
            "status": "fail",
            "code": "missing_field",
            "message": "You need a name, an e-mail and a password to create a user account.",
        }

    def test_invalid_password(self, client: TestClient) -> None:
        resp = client.post(
            f"{API}/users/register",
            json={"name": "alice", "email": "alice@x.com", "password": "password"},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_password"

    def test_conflict(self, client: TestClient) -> None:
        register(client, "alice", "alice@x.com")
        resp = client.post(
            f"{API}/users/register",
            json={"name": "alice", "email": "alice@acme.io", "password": PASSWORD},
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "conflict"

    def test_malformed_body_is_400(self, client: TestClient) -> None:
        resp = client.post(
            f"{API}/users/register",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestLogin:
    def test_login_by_name(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.post(f"{API}/users/login", json={"name": "alice", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["id"] == alice.id
        assert resp.cookies.get("refreshToken")

    def test_login_by_email(self, client: TestClient) -> None:
        register(client, "alice", "alice@x.com")
        resp = client.post(f"{API}/users/login", json={"email": "alice@x.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["name"] == "alice"

    def test_wrong_password_and_unknown_user_are_indistinguishable(self, client: TestClient) -> None:
        register(client, "alice", "alice@x.com")
        wrong = client.post(f"{API}/users/login", json={"name": "alice", "password": "Wrong1!!"})
        unknown = client.post(f"{API}/users/login", json={"name": "nobody", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.headers["www-authenticate"] == "Bearer"

    def test_missing_identifier(self, client: TestClient) -> None:
        resp = client.post(f"{API}/users/login", json={"password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_field"


class TestRefreshAndLogout:
    def test_refresh_with_cookie(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.post(f"{API}/users/refresh")
        assert resp.status_code == 200, resp.text
        token = resp.json()["data"]["accessToken"]
        assert token
        profile = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {token}"})
        assert profile.json()["data"]["id"] == alice.id

    def test_refresh_does_not_rotate_cookie(self, client: TestClient) -> None:
        register(client, "alice", "alice@x.com")
        resp = client.post(f"{API}/users/refresh")
        assert "set-cookie" not in resp.headers

    def test_refresh_without_cookie(self, client: TestClient) -> None:
        resp = client.post(f"{API}/users/refresh")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing refresh token."

    def test_access_token_in_cookie_is_rejected(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        client.cookies.clear()
        client.cookies.set("refreshToken", alice.access_token)
        resp = client.post(f"{API}/users/refresh")
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"

    def test_logout_clears_cookie(self, client: TestClient) -> None:
        register(client, "alice", "alice@x.com")
        resp = client.post(f"{API}/users/logout")
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "Logout successful."}
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith('refreshToken="";') or set_cookie.startswith("refreshToken=;")
        assert "Max-Age=0" in set_cookie
        assert client.post(f"{API}/users/refresh").status_code == 400

    def test_logout_without_session(self, client: TestClient) -> None:
        assert client.post(f"{API}/users/logout").status_code == 200


class TestAuthenticationGate:
    def test_profile_requires_token(self, client: TestClient) -> None:
        resp = client.get(f"{API}/users/profile")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthorized"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_non_bearer_scheme(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.get(f"{API}/users/profile", headers={"Authorization": f"Token {alice.access_token}"})
        assert resp.status_code == 401

    def test_empty_bearer(self, client: TestClient) -> None:
        resp = client.get(f"{API}/users/profile", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_garbage_token(self, client: TestClient) -> None:
        resp = client.get(f"{API}/users/profile", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired token."

    def test_refresh_token_is_not_an_access_token(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {alice.refresh_token}"})
        assert resp.status_code == 401

    def test_token_of_deleted_account(self, client: TestClient, admin: Session) -> None:
        alice = register(client, "alice", "alice@x.com")
        assert client.delete(f"{API}/users/{alice.id}", headers=admin.headers).status_code == 200
        resp = client.get(f"{API}/users/profile", headers=alice.headers)
        assert resp.status_code == 401
        assert resp.json()["message"] == "Account no longer exists."


class TestProfile:
    def test_get_profile(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.get(f"{API}/users/profile", headers=alice.headers)
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "success",
            "data": {"id": alice.id, "name": "alice", "email": "alice@x.com", "role": "USER"},
        }

    def test_partial_update_reissues_tokens(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(f"{API}/users", json={"email": "alice@acme.io"}, headers=alice.headers)
        assert resp.status_code == 200, resp.text
        new_token = resp.json()["data"]["accessToken"]
        assert resp.cookies.get("refreshToken")

        profile = client.get(f"{API}/users/profile", headers={"Authorization": f"Bearer {new_token}"}).json()
        assert profile["data"]["name"] == "alice"
        assert profile["data"]["email"] == "alice@acme.io"

    def test_user_cannot_become_admin(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(f"{API}/users", json={"role": "ADMIN"}, headers=alice.headers)
        assert resp.status_code == 403
        assert client.get(f"{API}/users", headers=alice.headers).status_code == 403

    def test_invalid_role_string(self, client: TestClient, admin: Session) -> None:
        resp = client.put(f"{API}/users", json={"role": "superuser"}, headers=admin.headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_role"

    def test_name_taken(self, client: TestClient) -> None:
        register(client, "bob", "bob@x.com")
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(f"{API}/users", json={"name": "bob"}, headers=alice.headers)
        assert resp.status_code == 409


class TestPasswordChange:
    def test_change_then_login_with_new_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(
            f"{API}/users/passwordChange",
            json={"password": PASSWORD, "newPassword": "N3w-pass!"},
            headers=alice.headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["accessToken"]

        old = client.post(f"{API}/users/login", json={"name": "alice", "password": PASSWORD})
        new = client.post(f"{API}/users/login", json={"name": "alice", "password": "N3w-pass!"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_old_password_alias(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(
            f"{API}/users/passwordChange",
            json={"oldPassword": PASSWORD, "newPassword": "N3w-pass!"},
            headers=alice.headers,
        )
        assert resp.status_code == 200

    def test_wrong_current_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(
            f"{API}/users/passwordChange",
            json={"password": "Wrong1!!", "newPassword": "N3w-pass!"},
            headers=alice.headers,
        )
        assert resp.status_code == 401
        assert resp.json()["message"] == "Incorrect password."

    def test_reusing_current_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.put(
            f"{API}/users/passwordChange",
            json={"password": PASSWORD, "newPassword": PASSWORD},
            headers=alice.headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "password_reused"


class TestDeleteOwnAccount:
    def test_delete_with_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = _delete_own(client, alice, PASSWORD)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Account deleted successfully."
        assert "refreshToken" in resp.headers["set-cookie"]
        assert client.post(f"{API}/users/login", json={"name": "alice", "password": PASSWORD}).status_code == 401

    def test_wrong_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        assert _delete_own(client, alice, "Wrong1!!").status_code == 401
        assert client.get(f"{API}/users/profile", headers=alice.headers).status_code == 200

    def test_missing_password(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = _delete_own(client, alice, None)
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_field"


class TestAdministration:
    def test_list_users(self, client: TestClient, admin: Session) -> None:
        register(client, "alice", "alice@x.com")
        resp = client.get(f"{API}/users", headers=admin.headers)
        assert resp.status_code == 200
        users = resp.json()["data"]
        assert [u["name"] for u in users] == ["root-admin", "alice"]
        assert {"createdAt", "updatedAt", "email"} <= set(users[0])
        assert all("password_hash" not in u and "passwordHash" not in u for u in users)

    def test_user_gets_403(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")
        for method, path in (("GET", "/users"), ("GET", f"/users/{alice.id}"), ("DELETE", f"/users/{alice.id}")):
            resp = client.request(method, f"{API}{path}", headers=alice.headers)
            assert resp.status_code == 403, (method, path)
            assert resp.json()["message"] == "Insufficient rights to access this resource."

    def test_admin_routes_require_auth(self, client: TestClient) -> None:
        assert client.get(f"{API}/users").status_code == 401

    def test_get_user(self, client: TestClient, admin: Session) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.get(f"{API}/users/{alice.id}", headers=admin.headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == "alice@x.com"
        assert set(resp.json()["data"]) == {"id", "name", "email", "role", "createdAt", "updatedAt"}

    def test_get_missing_user(self, client: TestClient, admin: Session) -> None:
        resp = client.get(f"{API}/users/999", headers=admin.headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_promote_takes_effect_on_next_request(self, client: TestClient, admin: Session) -> None:
        alice = register(client, "alice", "alice@x.com")
        assert client.get(f"{API}/users", headers=alice.headers).status_code == 403

        resp = client.patch(f"{API}/users/{alice.id}", json={"role": "admin"}, headers=admin.headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["role"] == "ADMIN"
        # Old token, new role: the gate reads the stored account.
        assert client.get(f"{API}/users", headers=alice.headers).status_code == 200

    def test_demoted_admin_loses_access(self, client: TestClient, admin: Session) -> None:
        resp = client.put(f"{API}/users", json={"role": "USER"}, headers=admin.headers)
        assert resp.status_code == 200
        assert client.get(f"{API}/users", headers=admin.headers).status_code == 403

    def test_patch_with_empty_body(self, client: TestClient, admin: Session) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.patch(f"{API}/users/{alice.id}", json={}, headers=admin.headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "no_changes"

    def test_delete_user(self, client: TestClient, admin: Session) -> None:
        alice = register(client, "alice", "alice@x.com")
        resp = client.delete(f"{API}/users/{alice.id}", headers=admin.headers)
        assert resp.status_code == 200
        assert resp.json()["message"] == f"User {alice.id} has been deleted successfully."
        assert client.delete(f"{API}/users/{alice.id}", headers=admin.headers).status_code == 404

    def test_non_numeric_id_is_404(self, client: TestClient, admin: Session) -> None:
        assert client.get(f"{API}/users/abc", headers=admin.headers).status_code == 404


class TestEndToEnd:
    def test_alice_session_lifecycle(self, client: TestClient) -> None:
        alice = register(client, "alice", "alice@x.com")

        resp = client.put(f"{API}/users", json={"name": "alice-w"}, headers=alice.headers)
        assert resp.status_code == 200
        token = resp.json()["data"]["accessToken"]
        headers = {"Authorization": f"Bearer {token}"}

        refreshed = client.post(f"{API}/users/refresh")
        assert refreshed.status_code == 200

        resp = client.put(
            f"{API}/users/passwordChange",
            json={"password": PASSWORD, "newPassword": "An0ther-pass!"},
            headers=headers,
        )
        assert resp.status_code == 200

        resp = client.post(f"{API}/users/login", json={"email": "alice@x.com", "password": "An0ther-pass!"})
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["name"] == "alice-w"

        assert _delete_own(client, alice, "An0ther-pass!").status_code == 200
        assert client.post(f"{API}/users/refresh").status_code == 400


class TestErrorEnvelope:
    def test_unknown_route(self, client: TestClient) -> None:
        resp = client.get(f"{API}/nope")
        assert resp.status_code == 404
        assert resp.json()["status"] == "fail"

    def test_wrong_method(self, client: TestClient) -> None:
        resp = client.get(f"{API}/users/login")
        assert resp.status_code == 405
        assert resp.json()["code"] == "http_405"
