"""Security tests.

Tests:
- Security headers on platform responses
- Cross-tenant isolation of sites and files
- JSON error bodies never leak internal detail
"""

from unittest.mock import patch

from conftest import auth
from sitehost.errors import StorageBackendError


class TestSecurityHeaders:
    """Verify security headers are present on responses."""

    def test_x_content_type_options(self, client):
        response = client.get("/api/health")
        assert response.headers.get("X-Content-Type-Options") == "nosniff"

    def test_x_frame_options(self, client):
        response = client.get("/")
        assert response.headers.get("X-Frame-Options") == "DENY"

    def test_referrer_policy(self, client):
        response = client.get("/")
        assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"

    def test_permissions_policy(self, client):
        pp = client.get("/").headers.get("Permissions-Policy")
        assert "camera=()" in pp
        assert "microphone=()" in pp

    def test_csp_header(self, client):
        csp = client.get("/").headers.get("Content-Security-Policy")
        assert "default-src 'self'" in csp
        assert "frame-ancestors 'none'" in csp

    def test_no_hsts_in_debug(self, client):
        assert client.get("/").headers.get("Strict-Transport-Security") is None

    def test_headers_on_error_pages(self, client):
        response = client.get("/api/nonexistent")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Route not found"}
        assert response.headers.get("X-Content-Type-Options") == "nosniff"


class TestCrossTenantIsolation:
    """User A cannot see or change User B's sites or files."""

    def _site(self, client, token, subdomain):
        return client.post(
            "/api/sites", json={"name": subdomain, "subdomain": subdomain}, headers=auth(token)
        ).get_json()["site"]["id"]

    def test_cannot_write_into_other_site(self, client, seed_data, sites_root):
        bob_site = self._site(client, seed_data["bob_token"], "bobsite")

        response = client.post(
            f"/api/files/{bob_site}/files",
            json={"filename": "index.html", "content": "defaced"},
            headers=auth(seed_data["alice_token"]),
        )
        assert response.status_code == 404
        index = sites_root / seed_data["bob_id"] / bob_site / "index.html"
        assert "defaced" not in index.read_text()

    def test_cannot_reach_sibling_site_by_path(self, client, seed_data):
        alice_site = self._site(client, seed_data["alice_token"], "alicesite")
        bob_site = self._site(client, seed_data["bob_token"], "bobsite")

        response = client.post(
            f"/api/files/{alice_site}/files",
            json={"filename": f"../../{seed_data['bob_id']}/{bob_site}/index.html", "content": "x"},
            headers=auth(seed_data["alice_token"]),
        )
        assert response.status_code == 404
        assert response.get_json() == {"error": "File not found"}

    def test_site_list_only_shows_own_sites(self, client, seed_data):
        self._site(client, seed_data["alice_token"], "alicesite")
        self._site(client, seed_data["bob_token"], "bobsite")
        sites = client.get("/api/sites", headers=auth(seed_data["alice_token"])).get_json()["sites"]
        assert [s["subdomain"] for s in sites] == ["alicesite"]


class TestErrorBodies:

    def test_storage_failure_is_generic(self, client, seed_data):
        site_id = client.post(
            "/api/sites", json={"name": "S", "subdomain": "bobsite"}, headers=auth(seed_data["bob_token"])
        ).get_json()["site"]["id"]

        with patch(
            "sitehost.services.storage_service.write",
            side_effect=StorageBackendError("write /srv/hosted-sites/secret/path: EIO"),
        ):
            response = client.post(
                f"/api/files/{site_id}/files",
                json={"filename": "a.html", "content": "x"},
                headers=auth(seed_data["bob_token"]),
            )
        assert response.status_code == 500
        assert response.get_json() == {"error": "Storage operation failed"}
