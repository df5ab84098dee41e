"""
End-to-end tests of the HTTP layer against a throwaway SQLite database.
"""
import pytest

from app.features.permissions.catalog import catalog
from app.features.permissions.resolver import ExtraPermissionOverride as Override, resolver
from app.features.users.models import UserState

ROOT = 0
PLATFORM_ADMIN = 30
USER_ADMIN = 31
OPERATION_ADMIN = 32
METRICS_ADMIN = 33


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def permission_ids(body):
    return {p["id"] for p in body["permissions"]}


class TestLogin:

    def test_login_returns_bearer_and_profile(self, client, make_user):
        user_id = make_user("ops@offgrid.org", OPERATION_ADMIN)
        response = client.post("/auth/login", json={"email": "ops@offgrid.org", "password": "correct-horse"})
        assert response.status_code == 200
        body = response.json()
        assert body["bearer"]
        assert body["expire_in"] > 0
        assert body["user"]["id"] == user_id
        assert body["user"]["role"] == {"id": OPERATION_ADMIN, "name": "OperationAdmin"}
        assert permission_ids(body["user"]) == catalog.expand_all(["G", "PR", "MR"])
        assert body["user"]["last_login_at"] is not None

    def test_valid_bearer_is_reused(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        response = client.post(
            "/auth/login",
            json={"email": "ops@offgrid.org", "password": "correct-horse"},
            headers=bearer(token),
        )
        assert response.status_code == 200
        assert response.json()["bearer"] == token

    def test_invalid_bearer_is_rejected(self, client, make_user):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        response = client.post(
            "/auth/login",
            json={"email": "ops@offgrid.org", "password": "correct-horse"},
            headers=bearer("stale-token"),
        )
        assert response.status_code == 401
        assert response.json()["code"] == 303

    @pytest.mark.parametrize("email, password", [
        ("ops@offgrid.org", "wrong-password"),
        ("nobody@offgrid.org", "correct-horse"),
    ])
    def test_bad_credentials_look_the_same(self, client, make_user, email, password):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401
        assert response.json() == {"code": 401, "message": "incorrect email or password"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_banned_user_cannot_login(self, client, make_user):
        make_user("ops@offgrid.org", OPERATION_ADMIN, state=UserState.BANNED)
        response = client.post("/auth/login", json={"email": "ops@offgrid.org", "password": "correct-horse"})
        assert response.status_code == 403
        assert response.json()["code"] == 315

    def test_malformed_email(self, client):
        response = client.post("/auth/login", json={"email": "not-an-email", "password": "correct-horse"})
        assert response.status_code == 400
        assert "email" in response.json()

    def test_logout_invalidates_bearer(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        assert client.post("/auth/logout", headers=bearer(token)).status_code == 200
        response = client.get("/users/me", headers=bearer(token))
        assert response.status_code == 401
        assert response.json()["code"] == 302


class TestCurrentUser:

    def test_me(self, client, make_user, login):
        user_id = make_user("ua@offgrid.org", USER_ADMIN, overrides=[("U_D", True)])
        token = login("ua@offgrid.org")
        response = client.get("/users/me", headers=bearer(token))
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == user_id
        assert body["email"] == "ua@offgrid.org"
        assert permission_ids(body) == catalog.expand_all(["U", "UA"]) - {"U_D"}

    def test_no_singular_alias(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        token = login("ua@offgrid.org")
        assert client.get("/user/me", headers=bearer(token)).status_code == 404

    def test_me_requires_login(self, client):
        response = client.get("/users/me")
        assert response.status_code == 401
        assert response.json()["code"] == 302

    def test_delete_me(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        assert client.delete("/users/me", headers=bearer(token)).status_code == 200
        assert client.get("/users/me", headers=bearer(token)).status_code == 401
        response = client.post("/auth/login", json={"email": "ops@offgrid.org", "password": "correct-horse"})
        assert response.json()["code"] == 401

    def test_delete_me_ends_every_session(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        first = login("ua@offgrid.org")
        second = login("ua@offgrid.org")
        assert first != second
        assert client.delete("/users/me", headers=bearer(first)).status_code == 200
        response = client.get("/users/", headers=bearer(second))
        assert response.status_code == 401
        assert response.json()["code"] == 302


class TestListUsers:

    # name -> (role, overrides)
    POPULATION = {
        "lister": (USER_ADMIN, ()),
        "plain": (OPERATION_ADMIN, ()),
        "granted": (OPERATION_ADMIN, (("U", False),)),
        "shielded": (USER_ADMIN, (("U_L", True),)),
        "both": (METRICS_ADMIN, (("U_L", False), ("U", True))),
        "root": (ROOT, (("M_S", True), ("CR_Ta", True))),
        "computation": (2, (("CR_La", False), ("CR_Ls", True))),
    }

    @pytest.fixture
    def population(self, client, make_user):
        return {
            name: make_user(f"{name}@offgrid.org", role, overrides=overrides)
            for name, (role, overrides) in self.POPULATION.items()
        }

    def list_ids(self, client, token, **params):
        response = client.get("/users/", params=params, headers=bearer(token))
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["total"] == len(body["result"])
        return {user["id"] for user in body["result"]}

    def test_requires_list_permission(self, client, population, login):
        token = login("plain@offgrid.org")
        response = client.get("/users/", headers=bearer(token))
        assert response.status_code == 403
        assert response.json() == {"code": 301, "message": "permission denied"}

    def test_unfiltered(self, client, population, login):
        token = login("lister@offgrid.org")
        assert self.list_ids(client, token) == set(population.values())

    def test_filter_by_permission(self, client, population, login):
        token = login("lister@offgrid.org")
        expected = {population["lister"], population["granted"], population["root"]}
        assert self.list_ids(client, token, permission="U_L") == expected

    def test_filter_by_interior_permission(self, client, population, login):
        token = login("lister@offgrid.org")
        expected = {population["plain"], population["granted"], population["root"]}
        assert self.list_ids(client, token, permission="G") == expected

    @pytest.mark.parametrize("code, holders", [
        ("M_S", {"both"}),
        ("CR_Ls", {"root"}),
        ("CR_La", {"root", "computation"}),
        ("CR_Ts", {"computation"}),
    ])
    def test_shields_are_applied(self, client, population, login, code, holders):
        token = login("lister@offgrid.org")
        assert self.list_ids(client, token, permission=code) == {population[name] for name in holders}

    def test_filter_agrees_with_resolver(self, client, population, login):
        token = login("lister@offgrid.org")
        for code in sorted(catalog.codes()):
            expected = {
                population[name]
                for name, (role, overrides) in self.POPULATION.items()
                if resolver.grants(role, [Override(c, is_shield) for c, is_shield in overrides], code)
            }
            assert self.list_ids(client, token, permission=code) == expected, code

    def test_role_and_permission_are_intersected(self, client, population, login):
        token = login("lister@offgrid.org")
        assert self.list_ids(client, token, role=OPERATION_ADMIN, permission="U_L") == {population["granted"]}
        assert self.list_ids(client, token, role=OPERATION_ADMIN) == {population["plain"], population["granted"]}

    def test_filter_by_email(self, client, population, login):
        token = login("lister@offgrid.org")
        assert self.list_ids(client, token, email="SHIELD") == {population["shielded"]}

    def test_pagination(self, client, population, login):
        token = login("lister@offgrid.org")
        response = client.get("/users/", params={"page": 2, "per_page": 2}, headers=bearer(token))
        body = response.json()
        assert body["total"] == len(population)
        assert [user["id"] for user in body["result"]] == sorted(population.values())[2:4]

    @pytest.mark.parametrize("params", [{"permission": "NOPE"}, {"role": 999}, {"state": 9}])
    def test_invalid_filter(self, client, population, login, params):
        token = login("lister@offgrid.org")
        response = client.get("/users/", params=params, headers=bearer(token))
        assert response.status_code == 400
        assert response.json()["code"] == 100


class TestModifyUser:

    def test_change_username(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch(f"/users/{target}", json={"username": "renamed"}, headers=bearer(token))
        assert response.status_code == 200
        assert response.json()["username"] == "renamed"

    def test_needs_data_permission(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN, overrides=[("U_DM", True)])
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch(f"/users/{target}", json={"username": "renamed"}, headers=bearer(token))
        assert response.status_code == 403
        response = client.patch(f"/users/{target}", json={"role_id": USER_ADMIN}, headers=bearer(token))
        assert response.status_code == 200

    def test_needs_permission_management(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN, overrides=[("U_PM", True)])
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch(
            f"/users/{target}", json={"extra_permissions": [{"id": "G", "is_shield": True}]}, headers=bearer(token)
        )
        assert response.status_code == 403

    def test_replace_extra_permissions(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN, overrides=[("M", False)])
        token = login("ua@offgrid.org")
        response = client.patch(
            f"/users/{target}",
            json={"extra_permissions": [{"id": "G", "is_shield": True}, {"id": "M_S"}, {"id": "M_S"}]},
            headers=bearer(token),
        )
        assert response.status_code == 200, response.text
        expected = catalog.expand_all(["PR", "MR", "M_S"])
        assert permission_ids(response.json()) == expected

        target_token = login("ops@offgrid.org")
        me = client.get("/users/me", headers=bearer(target_token)).json()
        assert permission_ids(me) == expected

    def test_changes_apply_at_next_login(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        admin_token = login("ua@offgrid.org")
        target_token = login("ops@offgrid.org")
        client.patch(f"/users/{target}", json={"role_id": METRICS_ADMIN}, headers=bearer(admin_token))
        me = client.get("/users/me", headers=bearer(target_token)).json()
        assert "G" in permission_ids(me)

    def test_unknown_permission_code(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch(f"/users/{target}", json={"extra_permissions": [{"id": "NOPE"}]}, headers=bearer(token))
        assert response.status_code == 400

    def test_email_conflict(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch(f"/users/{target}", json={"email": "ua@offgrid.org"}, headers=bearer(token))
        assert response.status_code == 409
        assert response.json()["code"] == 313

    def test_email_held_by_application(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        client.post(
            "/applications/",
            json={"email": "new@offgrid.org", "username": "newcomer", "password": "correct-horse"},
        )
        token = login("ua@offgrid.org")
        response = client.patch(f"/users/{target}", json={"email": "new@offgrid.org"}, headers=bearer(token))
        assert response.status_code == 409
        assert response.json()["code"] == 313

    def test_unknown_user(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        token = login("ua@offgrid.org")
        response = client.patch("/users/9999", json={"username": "ghost"}, headers=bearer(token))
        assert response.status_code == 404


class TestBan:

    def test_ban_revokes_sessions_and_blocks_login(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        admin_token = login("ua@offgrid.org")
        target_token = login("ops@offgrid.org")

        assert client.post(f"/users/{target}/ban", headers=bearer(admin_token)).status_code == 200
        assert client.get("/users/me", headers=bearer(target_token)).status_code == 401
        response = client.post("/auth/login", json={"email": "ops@offgrid.org", "password": "correct-horse"})
        assert response.json()["code"] == 315

        assert client.post(f"/users/{target}/unban", headers=bearer(admin_token)).status_code == 200
        login("ops@offgrid.org")

    def test_unban_is_idempotent(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        assert client.post(f"/users/{target}/unban", headers=bearer(token)).status_code == 200

    def test_ban_needs_permission(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        target = make_user("other@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        assert client.post(f"/users/{target}/ban", headers=bearer(token)).status_code == 403


class TestDeleteUser:

    def test_cannot_delete_self(self, client, make_user, login):
        user_id = make_user("ua@offgrid.org", USER_ADMIN)
        token = login("ua@offgrid.org")
        response = client.delete(f"/users/{user_id}", headers=bearer(token))
        assert response.status_code == 403
        assert response.json()["code"] == 320

    def test_cannot_delete_surpassing_user(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        target = make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ua@offgrid.org")
        response = client.delete(f"/users/{target}", headers=bearer(token))
        assert response.status_code == 403
        assert response.json()["code"] == 321

    def test_delete(self, client, make_user, login):
        make_user("pa@offgrid.org", PLATFORM_ADMIN)
        target = make_user("ua@offgrid.org", USER_ADMIN, overrides=[("G", False)])
        token = login("pa@offgrid.org")
        target_token = login("ua@offgrid.org")
        assert client.delete(f"/users/{target}", headers=bearer(token)).status_code == 200
        assert client.get("/users/me", headers=bearer(target_token)).status_code == 401
        assert client.delete(f"/users/{target}", headers=bearer(token)).status_code == 404


class TestApplications:

    def register(self, client, email="new@offgrid.org"):
        return client.post(
            "/applications/",
            json={"email": email, "username": "newcomer", "password": "correct-horse"},
        )

    def application_id(self, client, token, email="new@offgrid.org"):
        response = client.get("/applications/", params={"email": email}, headers=bearer(token))
        assert response.status_code == 200
        (entry,) = response.json()["result"]
        return entry["id"]

    def test_register_and_pending(self, client):
        response = self.register(client)
        assert response.status_code == 201
        assert response.json()["is_application_pending"] is True
        response = client.post("/auth/login", json={"email": "new@offgrid.org", "password": "correct-horse"})
        assert response.status_code == 403
        assert response.json()["code"] == 311

    def test_register_twice(self, client):
        self.register(client)
        assert self.register(client).json()["code"] == 313

    def test_register_existing_user(self, client, make_user):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        assert self.register(client, "ops@offgrid.org").status_code == 409

    def test_short_password(self, client):
        response = client.post(
            "/applications/", json={"email": "new@offgrid.org", "username": "newcomer", "password": "short"}
        )
        assert response.status_code == 400

    def test_approve_with_overrides(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        self.register(client)
        token = login("ua@offgrid.org")
        application_id = self.application_id(client, token)

        response = client.post(
            f"/applications/{application_id}/approve",
            json={"role_id": OPERATION_ADMIN, "extra_permissions": [{"id": "U_L"}, {"id": "MR", "is_shield": True}]},
            headers=bearer(token),
        )
        assert response.status_code == 200, response.text

        new_token = login("new@offgrid.org")
        me = client.get("/users/me", headers=bearer(new_token)).json()
        assert me["id"] == response.json()["user_id"]
        assert permission_ids(me) == catalog.expand_all(["G", "PR", "U_L"])
        listing = client.get("/applications/", headers=bearer(token)).json()
        assert listing["total"] == 0

    def test_approve_with_unknown_code(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        self.register(client)
        token = login("ua@offgrid.org")
        application_id = self.application_id(client, token)
        response = client.post(
            f"/applications/{application_id}/approve",
            json={"role_id": OPERATION_ADMIN, "extra_permissions": [{"id": "Nope"}]},
            headers=bearer(token),
        )
        assert response.status_code == 400

    def test_reject_then_reset(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        self.register(client)
        token = login("ua@offgrid.org")
        application_id = self.application_id(client, token)

        assert client.post(f"/applications/{application_id}/reject", headers=bearer(token)).status_code == 200
        response = client.post("/auth/login", json={"email": "new@offgrid.org", "password": "correct-horse"})
        assert response.json()["code"] == 312
        assert self.register(client).status_code == 409

        assert client.delete(f"/applications/{application_id}", headers=bearer(token)).status_code == 200
        assert self.register(client).status_code == 201

    def test_listing_needs_permission(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        assert client.get("/applications/", headers=bearer(token)).status_code == 403

    def test_approve_when_email_already_registered(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        self.register(client)
        token = login("ua@offgrid.org")
        application_id = self.application_id(client, token)
        make_user("new@offgrid.org", OPERATION_ADMIN)

        response = client.post(
            f"/applications/{application_id}/approve",
            json={"role_id": OPERATION_ADMIN},
            headers=bearer(token),
        )
        assert response.status_code == 409
        assert response.json()["code"] == 313
        assert self.application_id(client, token) == application_id

    def test_unknown_application(self, client, make_user, login):
        make_user("ua@offgrid.org", USER_ADMIN)
        token = login("ua@offgrid.org")
        response = client.post("/applications/9999/reject", headers=bearer(token))
        assert response.status_code == 404


class TestCatalogRoutes:

    def test_permission_tree(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        response = client.get("/permissions/", headers=bearer(token))
        assert response.status_code == 200
        tree = response.json()
        assert tree["id"] == "ROOT"
        assert [child["id"] for child in tree["children"]] == ["U", "UA", "PR", "MR", "CR", "G", "M"]

    def test_permission_tree_requires_login(self, client):
        response = client.get("/permissions/")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_roles(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        body = client.get("/permissions/roles", headers=bearer(token)).json()
        by_id = {role["id"]: role for role in body}
        assert set(by_id) == {0, 1, 2, 30, 31, 32, 33}
        assert len(by_id[ROOT]["permissions"]) == len(catalog)
        assert by_id[OPERATION_ADMIN]["seeds"] == ["G", "PR", "MR"]


class TestMetrics:

    def test_session_stats(self, client, make_user, login):
        make_user("metrics@offgrid.org", METRICS_ADMIN)
        token = login("metrics@offgrid.org")
        response = client.get("/metrics/sessions", headers=bearer(token))
        assert response.status_code == 200
        body = response.json()
        assert body["issued"] >= 1
        assert body["size"] == 1
        assert body["hits"] >= 1

    def test_session_stats_needs_permission(self, client, make_user, login):
        make_user("ops@offgrid.org", OPERATION_ADMIN)
        token = login("ops@offgrid.org")
        response = client.get("/metrics/sessions", headers=bearer(token))
        assert response.status_code == 403
        assert response.json() == {"code": 301, "message": "permission denied"}


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
