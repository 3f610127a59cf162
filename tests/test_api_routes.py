"""
tests/test_api_routes.py -- Integration tests for the StoreRater HTTP API.

These tests exercise the full stack: FastAPI routing -> role policy
dependencies -> UserStore/RatingStore operations -> response envelopes.

Coverage:
  - Auth gate over HTTP: 401 without / with a bad token, 403 on role mismatch
  - Auth routes: signup, login (admin sentinel and stored users), me, logout,
    change-password
  - Admin routes: dashboard, user listing/detail/create, store listing/create,
    rating listing
  - Normal user routes: browse, rate (201 then 200), my-ratings, delete
  - Store owner routes: dashboard, store, ratings; owner without a store
  - Failure envelope shape for validation and unknown routes

Fixtures used (from conftest.py):
  - api_client: (client, tokens, ids) -- seeded users, one store "Corner Cafe"
"""

from __future__ import annotations

from fastapi.testclient import TestClient

ApiClient = tuple[TestClient, dict[str, str], dict[str, int]]


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _assert_failure(resp, status: int, message: str | None = None) -> dict:
    assert resp.status_code == status, f"Expected {status}, got {resp.status_code}: {resp.text}"
    body = resp.json()
    assert body["success"] is False
    if message is not None:
        assert body["message"] == message
    return body


# ---------------------------------------------------------------------------
# Auth gate and role policy over HTTP
# ---------------------------------------------------------------------------


class TestAuthGate:
    def test_missing_token(self, api_client: ApiClient) -> None:
        """A protected route without Authorization returns 401 and never runs the handler."""
        client, _tokens, _ids = api_client
        _assert_failure(client.get("/api/admin/users"), 401, "Not authorized to access this route. Please login.")

    def test_garbage_token(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        resp = client.get("/api/auth/me", headers=_auth("not-a-real-token"))
        _assert_failure(resp, 401, "Not authorized to access this route")

    def test_normal_user_on_admin_route(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/users", headers=_auth(tokens["user"]))
        _assert_failure(resp, 403, "User role 'normal_user' is not authorized to access this route")

    def test_admin_cannot_rate(self, api_client: ApiClient) -> None:
        """No role hierarchy: admin is not admitted to normal_user routes."""
        client, tokens, ids = api_client
        resp = client.post(f"/api/user/stores/{ids['store']}/rate", json={"rating": 5}, headers=_auth(tokens["admin"]))
        _assert_failure(resp, 403, "User role 'admin' is not authorized to access this route")

    def test_store_owner_cannot_rate(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        resp = client.post(f"/api/user/stores/{ids['store']}/rate", json={"rating": 5}, headers=_auth(tokens["owner"]))
        _assert_failure(resp, 403)

    def test_normal_user_on_owner_route(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        _assert_failure(client.get("/api/store-owner/dashboard", headers=_auth(tokens["user"])), 403)


# ---------------------------------------------------------------------------
# Auth routes
# ---------------------------------------------------------------------------


class TestSignupLogin:
    def test_signup_returns_token(self, api_client: ApiClient) -> None:
        """Signup creates a normal_user and returns a working token."""
        client, _tokens, _ids = api_client
        body = {
            "name": "Newly Registered Test Person",
            "email": "New.Person@Example.com",
            "password": "Secur3Pass!",
            "address": "12 Market Street",
        }
        resp = client.post("/api/auth/signup", json=body)
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["success"] is True
        assert data["user"]["role"] == "normal_user"
        assert data["user"]["email"] == "new.person@example.com"
        assert "password" not in data["user"]

        me = client.get("/api/auth/me", headers=_auth(data["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["id"] == data["user"]["id"]

    def test_signup_ignores_role_in_body(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        body = {
            "name": "Would Be Admin Test Person",
            "email": "sneaky@example.com",
            "password": "Secur3Pass!",
            "role": "admin",
        }
        resp = client.post("/api/auth/signup", json=body)
        assert resp.status_code == 201, resp.text
        assert resp.json()["user"]["role"] == "normal_user"

    def test_signup_duplicate_email(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        body = {"name": "Duplicate Email Test Person", "email": "USER@example.com", "password": "Secur3Pass!"}
        _assert_failure(client.post("/api/auth/signup", json=body), 400, "User already exists with this email")

    def test_signup_admin_email_reserved(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        body = {"name": "Admin Impersonator Person", "email": "admin@abc.com", "password": "Secur3Pass!"}
        _assert_failure(client.post("/api/auth/signup", json=body), 400)

    def test_signup_validation_errors_are_per_field(self, api_client: ApiClient) -> None:
        """Short name and weak password each produce their own field error."""
        client, _tokens, _ids = api_client
        body = {"name": "Too Short", "email": "weak@example.com", "password": "password"}
        data = _assert_failure(client.post("/api/auth/signup", json=body), 400, "Validation failed")
        fields = {e["field"] for e in data["errors"]}
        assert fields == {"name", "password"}

    def test_signup_bad_email(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        body = {"name": "Bad Email Address Person", "email": "not-an-email", "password": "Secur3Pass!"}
        data = _assert_failure(client.post("/api/auth/signup", json=body), 400, "Validation failed")
        assert data["errors"][0]["field"] == "email"

    def test_login_stored_user(self, api_client: ApiClient, user_password: str) -> None:
        client, _tokens, ids = api_client
        resp = client.post("/api/auth/login", json={"email": "user@example.com", "password": user_password})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["user"]["id"] == ids["user"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_admin_sentinel(self, api_client: ApiClient, admin_password: str) -> None:
        """Configured admin credentials yield a token for the sentinel identity."""
        client, _tokens, _ids = api_client
        resp = client.post("/api/auth/login", json={"email": "admin@abc.com", "password": admin_password})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["user"]["id"] == "admin"
        assert data["user"]["role"] == "admin"

        dash = client.get("/api/admin/dashboard", headers=_auth(data["token"]))
        assert dash.status_code == 200, dash.text

    def test_login_wrong_password(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        resp = client.post("/api/auth/login", json={"email": "user@example.com", "password": "Wrong@Pass1"})
        _assert_failure(resp, 401, "Invalid credentials")
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_unknown_email_same_response(self, api_client: ApiClient) -> None:
        client, _tokens, _ids = api_client
        resp = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "Wrong@Pass1"})
        _assert_failure(resp, 401, "Invalid credentials")


class TestAccountRoutes:
    def test_me_admin(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/auth/me", headers=_auth(tokens["admin"]))
        assert resp.status_code == 200
        assert resp.json()["user"] == {
            "id": "admin",
            "name": "Administrator",
            "email": "admin@abc.com",
            "role": "admin",
            "address": None,
            "created_at": None,
        }

    def test_logout(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.post("/api/auth/logout", headers=_auth(tokens["owner"]))
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_change_password_flow(self, api_client: ApiClient) -> None:
        """Wrong current -> 400, same password -> 400, then success and re-login."""
        client, _tokens, _ids = api_client
        signup = client.post(
            "/api/auth/signup",
            json={"name": "Password Changer Test User", "email": "changer@example.com", "password": "OldPass#1"},
        )
        assert signup.status_code == 201, signup.text
        headers = _auth(signup.json()["token"])

        wrong = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Nope#1234", "newPassword": "NewPass#22"},
            headers=headers,
        )
        _assert_failure(wrong, 400, "Current password is incorrect")

        same = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "OldPass#1", "newPassword": "OldPass#1"},
            headers=headers,
        )
        _assert_failure(same, 400)

        ok = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "OldPass#1", "newPassword": "NewPass#22"},
            headers=headers,
        )
        assert ok.status_code == 200, ok.text

        relogin = client.post("/api/auth/login", json={"email": "changer@example.com", "password": "NewPass#22"})
        assert relogin.status_code == 200

    def test_change_password_weak_new_password(self, api_client: ApiClient, user_password: str) -> None:
        client, tokens, _ids = api_client
        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": user_password, "newPassword": "short"},
            headers=_auth(tokens["other_user"]),
        )
        data = _assert_failure(resp, 400, "Validation failed")
        assert data["errors"][0]["field"] == "newPassword"

    def test_configured_admin_has_no_password_to_change(self, api_client: ApiClient) -> None:
        """The configured admin passes the role check but has no stored password: 400."""
        client, tokens, _ids = api_client
        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "whatever", "newPassword": "NewPass#22"},
            headers=_auth(tokens["admin"]),
        )
        _assert_failure(resp, 400, "Password cannot be changed for this account")

    def test_stored_admin_can_change_password(self, api_client: ApiClient) -> None:
        """An admin account created through the admin API changes its own password."""
        client, tokens, _ids = api_client
        created = client.post(
            "/api/admin/users",
            json={
                "name": "Second Administrator Account",
                "email": "second-admin@example.com",
                "password": "Adm1n!Pass",
                "role": "admin",
            },
            headers=_auth(tokens["admin"]),
        )
        assert created.status_code == 201, created.text

        login = client.post("/api/auth/login", json={"email": "second-admin@example.com", "password": "Adm1n!Pass"})
        assert login.status_code == 200, login.text
        headers = _auth(login.json()["token"])

        resp = client.post(
            "/api/auth/change-password",
            json={"currentPassword": "Adm1n!Pass", "newPassword": "Adm1n!Next"},
            headers=headers,
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"

        relogin = client.post("/api/auth/login", json={"email": "second-admin@example.com", "password": "Adm1n!Next"})
        assert relogin.status_code == 200, relogin.text


# ---------------------------------------------------------------------------
# Admin routes
# ---------------------------------------------------------------------------


class TestAdminRoutes:
    def test_dashboard_stats(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/dashboard", headers=_auth(tokens["admin"]))
        assert resp.status_code == 200, resp.text
        stats = resp.json()["stats"]
        assert set(stats) == {"totalUsers", "totalStores", "totalRatings"}
        assert stats["totalUsers"] >= 4
        assert stats["totalStores"] >= 1

    def test_list_users_role_filter(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/users", params={"role": "store_owner"}, headers=_auth(tokens["admin"]))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["count"] == len(data["users"]) >= 2
        assert all(u["role"] == "store_owner" for u in data["users"])
        assert all("password" not in u for u in data["users"])

    def test_list_users_sorted(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/users", params={"sortBy": "email", "sortOrder": "asc"}, headers=_auth(tokens["admin"]))
        emails = [u["email"] for u in resp.json()["users"]]
        assert emails == sorted(emails)

    def test_list_users_unknown_params_ignored(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get(
            "/api/admin/users",
            params={"password": "x", "sortBy": "password; DROP TABLE users", "sortOrder": "sideways"},
            headers=_auth(tokens["admin"]),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["count"] >= 4

    def test_user_detail_for_owner_includes_store(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        resp = client.get(f"/api/admin/users/{ids['owner']}", headers=_auth(tokens["admin"]))
        assert resp.status_code == 200, resp.text
        user = resp.json()["user"]
        assert user["store_name"] == "Corner Cafe"
        assert "total_ratings" in user

    def test_user_detail_missing(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        _assert_failure(client.get("/api/admin/users/999999", headers=_auth(tokens["admin"])), 404, "User not found")

    def test_create_user_any_role(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        body = {
            "name": "Admin Created Owner Account",
            "email": "made-by-admin@example.com",
            "password": "Str0ng!Pass",
            "role": "store_owner",
        }
        resp = client.post("/api/admin/users", json=body, headers=_auth(tokens["admin"]))
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        assert resp.json()["user"]["role"] == "store_owner"

        dup = client.post("/api/admin/users", json=body, headers=_auth(tokens["admin"]))
        _assert_failure(dup, 400, "User already exists with this email")

    def test_create_user_invalid_role(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        body = {"name": "Invalid Role Test Account", "email": "badrole@example.com", "password": "Str0ng!Pass", "role": "owner"}
        data = _assert_failure(client.post("/api/admin/users", json=body, headers=_auth(tokens["admin"])), 400)
        assert data["errors"][0]["field"] == "role"

    def test_create_store_with_owner(self, api_client: ApiClient) -> None:
        """The new owner can log in with the temporary password and sees the new store."""
        client, tokens, _ids = api_client
        body = {
            "name": "Book Nook",
            "email": "hello@booknook.example.com",
            "address": "7 Library Lane",
            "owner_name": "Book Nook Owner",
            "owner_email": "books-owner@example.com",
            "temporary_password": "TempPass1",
        }
        resp = client.post("/api/admin/stores", json=body, headers=_auth(tokens["admin"]))
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["store"]["name"] == "Book Nook"
        assert data["store"]["total_ratings"] == 0
        assert data["store"]["average_rating"] is None
        assert data["owner"]["role"] == "store_owner"

        login = client.post("/api/auth/login", json={"email": "books-owner@example.com", "password": "TempPass1"})
        assert login.status_code == 200, login.text
        store = client.get("/api/store-owner/store", headers=_auth(login.json()["token"]))
        assert store.status_code == 200, store.text
        assert store.json()["store"]["id"] == data["store"]["id"]

    def test_create_store_duplicate_owner_email(self, api_client: ApiClient) -> None:
        """A taken owner email is rejected and no store is written."""
        client, tokens, _ids = api_client
        headers = _auth(tokens["admin"])
        before = client.get("/api/admin/stores", headers=headers).json()["count"]
        body = {
            "name": "Duplicate Owner Store",
            "email": "dup-store@example.com",
            "owner_name": "Duplicate Owner",
            "owner_email": "user@example.com",
            "temporary_password": "TempPass1",
        }
        _assert_failure(client.post("/api/admin/stores", json=body, headers=headers), 400)
        assert client.get("/api/admin/stores", headers=headers).json()["count"] == before

    def test_list_stores_filter(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/stores", params={"name": "CAF"}, headers=_auth(tokens["admin"]))
        assert resp.status_code == 200, resp.text
        names = [s["name"] for s in resp.json()["stores"]]
        assert names == ["Corner Cafe"]
        assert resp.json()["stores"][0]["owner_email"] == "owner@example.com"

    def test_list_ratings_bad_rating_filter(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/admin/ratings", params={"rating": "9"}, headers=_auth(tokens["admin"]))
        data = _assert_failure(resp, 400)
        assert data["errors"][0]["field"] == "rating"


# ---------------------------------------------------------------------------
# Normal user routes
# ---------------------------------------------------------------------------


class TestUserRoutes:
    def test_rate_create_then_update(self, api_client: ApiClient) -> None:
        """First submission is 201 created, the second is 200 updated, one record total."""
        client, tokens, ids = api_client
        headers = _auth(tokens["user"])
        url = f"/api/user/stores/{ids['store']}/rate"

        first = client.post(url, json={"rating": 3, "comment": "Decent"}, headers=headers)
        assert first.status_code == 201, f"Expected 201, got {first.status_code}: {first.text}"
        assert first.json()["created"] is True

        second = client.post(url, json={"rating": 5}, headers=headers)
        assert second.status_code == 200, second.text
        assert second.json()["created"] is False
        assert second.json()["rating"]["id"] == first.json()["rating"]["id"]
        assert second.json()["rating"]["rating"] == 5

        mine = client.get("/api/user/my-ratings", headers=headers).json()["ratings"]
        cafe = [r for r in mine if r["store_id"] == ids["store"]]
        assert len(cafe) == 1
        assert cafe[0]["store_name"] == "Corner Cafe"

        stores = client.get("/api/user/stores", params={"name": "corner"}, headers=headers).json()["stores"]
        assert stores[0]["user_rating"] == 5

    def test_rate_rejects_string_and_out_of_range(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        url = f"/api/user/stores/{ids['store']}/rate"
        for bad in ("4", 0, 6, 4.5):
            resp = client.post(url, json={"rating": bad}, headers=_auth(tokens["other_user"]))
            data = _assert_failure(resp, 400, "Validation failed")
            assert data["errors"][0]["field"] == "rating"

    def test_rate_comment_too_long(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        resp = client.post(
            f"/api/user/stores/{ids['store']}/rate",
            json={"rating": 4, "comment": "x" * 501},
            headers=_auth(tokens["other_user"]),
        )
        data = _assert_failure(resp, 400)
        assert data["errors"][0]["field"] == "comment"

    def test_rate_missing_store(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.post("/api/user/stores/999999/rate", json={"rating": 4}, headers=_auth(tokens["user"]))
        _assert_failure(resp, 404, "Store not found")

    def test_delete_rating_ownership(self, api_client: ApiClient) -> None:
        """Another user's rating is 403; own rating deletes; deleting again is 404."""
        client, tokens, ids = api_client
        created = client.post(
            f"/api/user/stores/{ids['store']}/rate", json={"rating": 2}, headers=_auth(tokens["other_user"])
        )
        assert created.status_code in (200, 201), created.text
        rating_id = created.json()["rating"]["id"]

        _assert_failure(client.delete(f"/api/user/ratings/{rating_id}", headers=_auth(tokens["user"])), 403)

        ok = client.delete(f"/api/user/ratings/{rating_id}", headers=_auth(tokens["other_user"]))
        assert ok.status_code == 200, ok.text

        _assert_failure(client.delete(f"/api/user/ratings/{rating_id}", headers=_auth(tokens["other_user"])), 404)


# ---------------------------------------------------------------------------
# Store owner routes
# ---------------------------------------------------------------------------


class TestStoreOwnerRoutes:
    def test_dashboard(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        client.post(f"/api/user/stores/{ids['store']}/rate", json={"rating": 4}, headers=_auth(tokens["user"]))

        resp = client.get("/api/store-owner/dashboard", headers=_auth(tokens["owner"]))
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["store"]["id"] == ids["store"]
        assert data["stats"]["total_ratings"] == len(data["ratings"]) >= 1
        assert all(r["store_id"] == ids["store"] for r in data["ratings"])
        assert any(r["user_email"] == "user@example.com" for r in data["ratings"])

    def test_ratings_listing(self, api_client: ApiClient) -> None:
        client, tokens, ids = api_client
        resp = client.get("/api/store-owner/ratings", headers=_auth(tokens["owner"]))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["count"] == len(data["ratings"])
        assert all(r["store_id"] == ids["store"] for r in data["ratings"])

    def test_owner_without_store(self, api_client: ApiClient) -> None:
        client, tokens, _ids = api_client
        resp = client.get("/api/store-owner/dashboard", headers=_auth(tokens["storeless_owner"]))
        _assert_failure(resp, 404, "No store found for this owner")


# ---------------------------------------------------------------------------
# Envelope for framework errors
# ---------------------------------------------------------------------------


def test_unknown_route_uses_envelope(api_client: ApiClient) -> None:
    client, _tokens, _ids = api_client
    _assert_failure(client.get("/api/nope"), 404)


def test_malformed_json_body(api_client: ApiClient) -> None:
    client, _tokens, _ids = api_client
    resp = client.post("/api/auth/login", content=b"{not json", headers={"Content-Type": "application/json"})
    _assert_failure(resp, 400, "Validation failed")
