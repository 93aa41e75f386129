"""HTTP surface tests using FastAPI's TestClient against a fake GitHub."""

import pytest
from fastapi.testclient import TestClient

from github_stats_proxy.app import create_app

from conftest import seed_user


@pytest.fixture
def client(settings, github_client):
    app = create_app(settings, github=github_client)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["environment"] == "development"

    def test_api_index(self, client):
        assert "stats" in client.get("/api").json()["endpoints"]["github"]

    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "Route not found"
        assert response.json()["path"] == "/nope"


class TestSecurityHeaders:
    """Hardening headers on successful and error responses."""

    expected = {
        "x-content-type-options": "nosniff",
        "x-frame-options": "SAMEORIGIN",
        "strict-transport-security": "max-age=31536000; includeSubDomains",
        "referrer-policy": "no-referrer",
    }

    @pytest.mark.parametrize(
        "path, status",
        [
            ("/health", 200),
            ("/nope", 404),
            ("/api/github/v2", 400),
        ],
    )
    def test_headers_present(self, client, path, status):
        response = client.get(path)
        assert response.status_code == status
        for name, value in self.expected.items():
            assert response.headers[name] == value


class TestProxyRoute:

    def test_missing_endpoint(self, client):
        response = client.get("/api/github/v2")
        assert response.status_code == 400
        assert response.json()["error"] == "Endpoint parameter required"

    def test_relative_endpoint(self, client):
        response = client.get("/api/github/v2/", params={"endpoint": "users/octocat"})
        assert response.status_code == 400
        assert response.json()["error"] == "Endpoint must start with /"

    def test_cached_proxy(self, client, fake_github):
        fake_github.add("/users/octocat", {"login": "octocat"})

        fresh = client.get("/api/github/v2", params={"endpoint": "/users/octocat", "cache": "true"})
        cached = client.get("/api/github/v2", params={"endpoint": "/users/octocat", "cache": "true"})

        assert fresh.json()["_metadata"]["cached"] is False
        assert cached.json()["_cached"] is True
        assert len(fake_github.calls) == 1

    def test_not_found(self, client):
        response = client.get("/api/github/v2", params={"endpoint": "/users/ghost"})
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Repository or resource not found"
        assert body["endpoint"] == "/users/ghost"
        assert "suggestion" in body

    def test_auth_failure(self, client, fake_github):
        fake_github.add("/user", {"message": "Bad credentials"}, status=401)
        response = client.get("/api/github/v2", params={"endpoint": "/user"})
        assert response.status_code == 401
        assert response.json()["error"] == "GitHub API authentication failed"

    def test_rate_limited(self, client, fake_github):
        fake_github.add("/users/a", {"message": "rate limit"}, status=403)
        response = client.get("/api/github/v2", params={"endpoint": "/users/a"})
        assert response.status_code == 429

    def test_server_error_carries_body(self, client, fake_github):
        fake_github.add("/users/a", {"message": "oops"}, status=500)
        response = client.get("/api/github/v2", params={"endpoint": "/users/a"})
        assert response.status_code == 500
        assert response.json()["error"] == "GitHub API error: 500"
        assert "oops" in response.json()["details"]


class TestStatsRoutes:

    def test_stats_by_query_and_path_share_cache(self, client, fake_github):
        seed_user(fake_github, "octocat", repo_count=2)

        first = client.get("/api/github/v2/stats", params={"username": "octocat"})
        second = client.get("/api/github/v2/stats/octocat")

        assert first.status_code == 200
        assert "cacheAge" not in first.json()
        assert second.json()["cacheAge"] >= 0
        assert len(fake_github.calls) == 5

    def test_force_refresh(self, client, fake_github):
        seed_user(fake_github, "octocat", repo_count=1)
        client.get("/api/github/v2/stats/octocat")
        response = client.get("/api/github/v2/stats/octocat", params={"force": "true"})
        assert "cacheAge" not in response.json()
        assert len(fake_github.calls) == 8

    def test_missing_username(self, client):
        response = client.get("/api/github/v2/stats")
        assert response.status_code == 400
        assert response.json()["usage"]

    def test_unknown_user(self, client):
        response = client.get("/api/github/v2/stats/ghost")
        assert response.status_code == 404
        assert response.json()["error"] == "User 'ghost' not found"


class TestCacheAdmin:

    def test_status_clear_and_delete(self, client, fake_github):
        fake_github.add("/users/a", {"login": "a"})
        fake_github.add("/users/b", {"login": "b"})
        seed_user(fake_github, "octocat", repo_count=1)
        client.get("/api/github/v2", params={"endpoint": "/users/a", "cache": "true"})
        client.get("/api/github/v2", params={"endpoint": "/users/b", "cache": "true"})
        client.get("/api/github/v2/stats/octocat")

        status = client.get("/api/github/v2/cache/status").json()
        assert status["entries"] == 3
        assert status["namespaces"] == {"endpoint": 2, "stats": 1}

        deleted = client.delete("/api/github/v2/cache/users/a")
        assert deleted.status_code == 200
        assert deleted.json()["message"] == "Cache cleared for endpoint: /users/a"

        missing = client.delete("/api/github/v2/cache/users/a")
        assert missing.status_code == 404

        assert client.delete("/api/github/v2/cache/stats_octocat").status_code == 200

        cleared = client.delete("/api/github/v2/cache").json()
        assert cleared == {"message": "Cache cleared successfully", "entriesCleared": 1}
