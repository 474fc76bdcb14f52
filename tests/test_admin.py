"""Tests for the admin API.

Covers:
- Auth guards (anonymous 401, non-admin 403)
- Dashboard rollups
- User list / create / detail / update / delete (cascade)
- All-sites listing and site status override
"""

import pytest

from conftest import auth
from sitehost.extensions import db
from sitehost.models.site import Site
from sitehost.models.user import User
from sitehost.services import admin_service, site_service, storage_service


@pytest.fixture
def populated(seed_data):
    """Two sites for bob, one for alice."""
    bob_sites = [
        site_service.create_site(seed_data["bob"], "Bob One", "bob-one"),
        site_service.create_site(seed_data["bob"], "Bob Two", "bob-two"),
    ]
    alice_site = site_service.create_site(seed_data["alice"], "Alice", "alice")
    return {"bob_sites": bob_sites, "alice_site": alice_site, **seed_data}


# ══════════════════════════════════════════════
#  AUTH GUARDS
# ══════════════════════════════════════════════

class TestAdminGuards:

    @pytest.mark.parametrize("path", [
        "/api/admin/dashboard",
        "/api/admin/users",
        "/api/admin/sites",
    ])
    def test_anonymous_rejected(self, client, seed_data, path):
        assert client.get(path).status_code == 401

    @pytest.mark.parametrize("path", [
        "/api/admin/dashboard",
        "/api/admin/users",
        "/api/admin/sites",
    ])
    def test_regular_user_forbidden(self, client, seed_data, path):
        response = client.get(path, headers=auth(seed_data["alice_token"]))
        assert response.status_code == 403
        assert "error" in response.get_json()

    def test_admin_allowed(self, client, seed_data):
        response = client.get("/api/admin/dashboard", headers=auth(seed_data["admin_token"]))
        assert response.status_code == 200


# ══════════════════════════════════════════════
#  DASHBOARD
# ══════════════════════════════════════════════

class TestDashboard:

    def test_counts(self, populated):
        site_service.set_active(populated["alice_site"], False)
        stats = admin_service.dashboard_stats()["stats"]

        assert stats["totalUsers"] == 3
        assert stats["totalSites"] == 3
        assert stats["activeSites"] == 2
        assert stats["totalStorage"] == sum(
            s.storage_bytes for s in Site.query.all()
        )
        plans = {row["_id"]: row["count"] for row in stats["planStats"]}
        assert plans == {"enterprise": 1, "free": 1, "pro": 1}

    def test_recent_lists(self, populated):
        data = admin_service.dashboard_stats()
        assert len(data["recentUsers"]) == 3
        assert {s["subdomain"] for s in data["recentSites"]} == {"bob-one", "bob-two", "alice"}
        assert all("owner" in s for s in data["recentSites"])


# ══════════════════════════════════════════════
#  USERS
# ══════════════════════════════════════════════

class TestUsers:

    def test_list_excludes_admins_and_rolls_up(self, populated):
        result = admin_service.list_users()
        by_name = {u["username"]: u for u in result["users"]}

        assert set(by_name) == {"alice", "bob"}
        assert by_name["bob"]["siteCount"] == 2
        assert by_name["bob"]["storageUsed"] == sum(s.storage_bytes for s in populated["bob_sites"])
        assert result["pagination"] == {"current": 1, "total": 1, "count": 2}

    def test_list_search_and_paging(self, populated):
        assert [u["username"] for u in admin_service.list_users(search="ALI")["users"]] == ["alice"]

        page = admin_service.list_users(page=2, limit=1)
        assert len(page["users"]) == 1
        assert page["pagination"]["total"] == 2

    def test_bad_paging_args_fall_back(self, populated):
        result = admin_service.list_users(page="x", limit="-3")
        assert result["pagination"]["current"] == 1

    def test_create_via_api(self, client, seed_data):
        response = client.post(
            "/api/admin/users",
            json={"username": "carol", "email": "Carol@Example.com", "password": "secret99", "plan": "pro"},
            headers=auth(seed_data["admin_token"]),
        )
        assert response.status_code == 201
        user = response.get_json()["user"]
        assert user["email"] == "carol@example.com"
        assert user["plan"] == "pro"
        assert user["role"] == "user"

    def test_create_duplicate_via_api(self, client, seed_data):
        response = client.post(
            "/api/admin/users",
            json={"username": "alice", "email": "new@example.com", "password": "secret99"},
            headers=auth(seed_data["admin_token"]),
        )
        assert response.status_code == 400
        assert response.get_json() == {"error": "User already exists"}

    def test_detail(self, client, populated):
        response = client.get(
            f"/api/admin/users/{populated['bob_id']}", headers=auth(populated["admin_token"])
        )
        body = response.get_json()
        assert body["user"]["username"] == "bob"
        assert body["statistics"]["totalSites"] == 2
        assert body["statistics"]["activeSites"] == 2

    def test_detail_unknown_user(self, client, seed_data):
        response = client.get("/api/admin/users/does-not-exist", headers=auth(seed_data["admin_token"]))
        assert response.status_code == 404
        assert response.get_json() == {"error": "User not found"}

    def test_update_plan_but_not_role(self, seed_data):
        user = admin_service.update_user(seed_data["alice_id"], {"plan": "pro", "role": "admin"})
        assert user.plan == "pro"
        assert user.role == "user"

    def test_update_to_taken_username(self, client, seed_data):
        response = client.put(
            f"/api/admin/users/{seed_data['alice_id']}",
            json={"username": "bob"},
            headers=auth(seed_data["admin_token"]),
        )
        assert response.status_code == 400
        assert response.get_json() == {"error": "Username already exists"}

    def test_update_to_taken_email(self, client, seed_data):
        response = client.put(
            f"/api/admin/users/{seed_data['alice_id']}",
            json={"email": "BOB@example.com"},
            headers=auth(seed_data["admin_token"]),
        )
        assert response.status_code == 400
        assert response.get_json() == {"error": "Email already exists"}

    def test_update_invalid_plan(self, client, seed_data):
        response = client.put(
            f"/api/admin/users/{seed_data['alice_id']}",
            json={"plan": "platinum"},
            headers=auth(seed_data["admin_token"]),
        )
        assert response.status_code == 400
        assert response.get_json()["errors"][0]["param"] == "plan"

    def test_deactivated_user_token_stops_working(self, client, seed_data):
        admin_service.update_user(seed_data["alice_id"], {"isActive": False})
        response = client.get("/api/sites", headers=auth(seed_data["alice_token"]))
        assert response.status_code == 401


class TestDeleteUser:

    def test_cascade_removes_sites_files_and_frees_subdomains(self, client, populated, sites_root):
        roots = [storage_service.root_for(s) for s in populated["bob_sites"]]
        bob_id = populated["bob_id"]

        response = client.delete(f"/api/admin/users/{bob_id}", headers=auth(populated["admin_token"]))
        assert response.status_code == 200
        assert response.get_json()["deletedSitesCount"] == 2

        db.session.expire_all()
        assert db.session.get(User, bob_id) is None
        assert Site.query.filter_by(owner_id=bob_id).count() == 0
        assert all(not root.exists() for root in roots)
        assert site_service.is_subdomain_available("bob-one")
        assert site_service.is_subdomain_available("bob-two")
        # Other tenants untouched.
        assert not site_service.is_subdomain_available("alice")

    def test_delete_unknown_user(self, client, seed_data):
        response = client.delete("/api/admin/users/ghost", headers=auth(seed_data["admin_token"]))
        assert response.status_code == 404

    def test_admin_cannot_delete_self(self, client, seed_data):
        response = client.delete(
            f"/api/admin/users/{seed_data['admin_id']}", headers=auth(seed_data["admin_token"])
        )
        assert response.status_code == 400


# ══════════════════════════════════════════════
#  SITES
# ══════════════════════════════════════════════

class TestAdminSites:

    def test_list_all_sites(self, client, populated):
        response = client.get("/api/admin/sites?search=bob", headers=auth(populated["admin_token"]))
        body = response.get_json()
        assert {s["subdomain"] for s in body["sites"]} == {"bob-one", "bob-two"}
        assert body["sites"][0]["owner"]["username"] == "bob"
        assert body["pagination"]["count"] == 2

    def test_deactivate_site(self, client, populated):
        site_id = populated["alice_site"].id
        response = client.post(
            f"/api/admin/sites/{site_id}/status",
            json={"active": False},
            headers=auth(populated["admin_token"]),
        )
        assert response.status_code == 200
        assert response.get_json()["site"]["active"] is False

        hosted = client.get("/", base_url="http://alice.ntando.app")
        assert b"Welcome to Alice" not in hosted.data

    def test_status_requires_active_flag(self, client, populated):
        response = client.post(
            f"/api/admin/sites/{populated['alice_site'].id}/status",
            json={},
            headers=auth(populated["admin_token"]),
        )
        assert response.status_code == 400
