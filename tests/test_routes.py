"""HTTP surface: gates, entity lookups, headers, tracking and the cron/event hooks."""
import pytest

BASE_URL = "https://forum.example.com"
AUTH = {"X-Cron-Secret": "s3cret"}


@pytest.mark.parametrize("path", ["/llms.txt", "/llms-full.txt", "/sitemaps.txt"])
class TestForumWideRoutes:
    def test_plain_text(self, make_client, path):
        response = make_client().get(path)
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"

    def test_disabled(self, make_client, path):
        response = make_client(enabled=False).get(path)
        assert response.status_code == 404
        assert response.text == "llms.txt generator is disabled"

    def test_indexing_forbidden(self, make_client, path):
        response = make_client(allow_indexing=False).get(path)
        assert response.status_code == 403
        assert response.text == "Indexing is not allowed"

    def test_disabled_checked_before_indexing(self, make_client, path):
        response = make_client(enabled=False, allow_indexing=False).get(path)
        assert response.status_code == 404


class TestGatesBeforeLookup:
    def test_disabled_entity_route(self, fab, make_client):
        topic = fab.topic("Hello")
        response = make_client(enabled=False).get(f"/t/{topic.slug}/{topic.id}/llms.txt")
        assert response.status_code == 404
        assert response.text == "llms.txt generator is disabled"

    def test_forbidden_missing_entity(self, make_client):
        response = make_client(allow_indexing=False).get("/t/nope/999999/llms.txt")
        assert response.status_code == 403


class TestNavigationRoute:
    def test_body(self, fab, make_client):
        fab.category("Announcements")
        body = make_client().get("/llms.txt").text
        assert body.startswith("# Example Forum")
        assert "### [Announcements]" in body

    def test_full_respects_min_views(self, fab, make_client):
        fab.topic("Ten views topic", category=fab.category("General"), views=10)
        assert "Ten views topic" not in make_client(min_views=50).get("/llms-full.txt").text
        assert "Ten views topic" in make_client(min_views=5).get("/llms-full.txt").text


class TestCategoryRoute:
    def test_found(self, fab, make_client):
        category = fab.category("Support")
        response = make_client().get(f"/c/support/{category.id}/llms.txt")
        canonical = f"{BASE_URL}/c/support/{category.id}"
        assert response.status_code == 200
        assert response.headers["link"] == f'<{canonical}>; rel="canonical"'
        assert f"**Canonical:** {canonical}" in response.text
        assert f"**Original content:** {canonical}" in response.text

    def test_nested_path(self, fab, make_client):
        support = fab.category("Support")
        billing = fab.category("Billing", parent=support)
        response = make_client().get(f"/c/support/billing/{billing.id}/llms.txt")
        assert response.status_code == 200
        assert response.text.startswith("# Billing")

    def test_slug_path_without_id(self, fab, make_client):
        support = fab.category("Support")
        fab.category("Billing", parent=support)
        assert make_client().get("/c/support/billing/llms.txt").status_code == 200

    def test_missing(self, make_client):
        response = make_client().get("/c/non-existent/999999/llms.txt")
        assert response.status_code == 404
        assert response.text == "Not found"

    def test_restricted(self, fab, make_client):
        staff = fab.category("Staff", read_restricted=True)
        assert make_client().get(f"/c/staff/{staff.id}/llms.txt").status_code == 404


class TestTopicRoute:
    def test_found(self, fab, make_client):
        topic = fab.topic("Hello", category=fab.category("General"))
        fab.post(topic, "Hi everyone", post_number=1)

        response = make_client().get(f"/t/hello/{topic.id}/llms.txt")
        canonical = f"{BASE_URL}/t/hello/{topic.id}"
        assert response.status_code == 200
        assert "Hi everyone" in response.text
        assert response.headers["link"] == f'<{canonical}>; rel="canonical"'

    def test_missing(self, make_client):
        assert make_client().get("/t/non-existent/999999/llms.txt").status_code == 404

    def test_non_numeric_id(self, make_client):
        assert make_client().get("/t/hello/abc/llms.txt").status_code == 404

    def test_unlisted_topic(self, fab, make_client):
        topic = fab.topic("Hidden away", visible=False)
        assert make_client().get(f"/t/hidden-away/{topic.id}/llms.txt").status_code == 404

    def test_private_message_not_served(self, fab, make_client):
        topic = fab.topic("Secret DM", archetype="private_message")
        fab.post(topic, "Just between us", post_number=1)

        response = make_client().get(f"/t/secret-dm/{topic.id}/llms.txt")
        assert response.status_code == 404
        assert "Just between us" not in response.text

    def test_topic_in_restricted_category(self, fab, make_client):
        topic = fab.topic("Staff only", category=fab.category("Staff", read_restricted=True))
        assert make_client().get(f"/t/staff-only/{topic.id}/llms.txt").status_code == 404


class TestTagRoute:
    def test_found(self, fab, make_client):
        fab.tag("howto")
        response = make_client().get("/tag/howto/llms.txt")
        assert response.status_code == 200
        assert "# Tag: howto" in response.text
        assert response.headers["link"] == f'<{BASE_URL}/tag/howto>; rel="canonical"'

    def test_missing(self, make_client):
        assert make_client().get("/tag/non-existent-tag/llms.txt").status_code == 404

    def test_tagging_disabled(self, fab, make_client):
        fab.tag("foo")
        response = make_client(tagging_enabled=False).get("/tag/foo/llms.txt")
        assert response.status_code == 404
        assert response.text == "Not found"


class TestAccessTracking:
    def test_counts_requests(self, repository, make_client):
        client = make_client()
        client.get("/llms.txt")
        client.get("/llms.txt")
        client.get("/llms-full.txt")

        assert repository.store_get("access_count_index") == "2"
        assert repository.store_get("access_count_full") == "1"
        assert repository.store_get("last_access_index") is not None

    def test_tracking_failure_does_not_break_response(self, repository, make_client, monkeypatch):
        def broken(key, value):
            raise RuntimeError("plugin store unavailable")

        monkeypatch.setattr(repository, "store_set", broken)
        response = make_client().get("/llms.txt")
        assert response.status_code == 200

    def test_gated_requests_not_counted(self, repository, make_client):
        make_client(enabled=False).get("/llms.txt")
        assert repository.store_get("access_count_index") is None

    def test_missing_entity_still_counted(self, repository, make_client):
        client = make_client()
        assert client.get("/t/non-existent/999999/llms.txt").status_code == 404
        assert client.get("/c/non-existent/999999/llms.txt").status_code == 404

        assert repository.store_get("access_count_topic") == "1"
        assert repository.store_get("access_count_category") == "1"


class TestHooks:
    def test_secret_required(self, make_client):
        client = make_client()
        assert client.post("/api/cron/refresh-cache").status_code == 401
        assert client.post("/api/cron/refresh-cache", headers={"X-Cron-Secret": "wrong"}).status_code == 401
        assert client.post("/api/events", json={"event": "post_created"}).status_code == 401
        assert client.get("/api/llms-txt/stats").status_code == 401

    def test_post_created_event_invalidates_navigation(self, fab, make_client):
        general = fab.category("General")
        client = make_client()
        assert "Brand new topic" not in client.get("/llms.txt").text

        fab.topic("Brand new topic", category=general)
        assert "Brand new topic" not in client.get("/llms.txt").text

        response = client.post("/api/events", json={"event": "post_created"}, headers=AUTH)
        assert response.json() == {"cleared": True}
        assert "Brand new topic" in client.get("/llms.txt").text

    def test_event_ignored_when_disabled(self, make_client):
        response = make_client(enabled=False).post("/api/events", json={"event": "post_edited"}, headers=AUTH)
        assert response.json() == {"cleared": False}

    def test_unknown_event_rejected(self, make_client):
        response = make_client().post("/api/events", json={"event": "user_logged_in"}, headers=AUTH)
        assert response.status_code == 422

    def test_refresh_cache_runs_check(self, make_client):
        client = make_client()
        response = client.post("/api/cron/refresh-cache", headers=AUTH)
        assert response.json() == {"queued": True}
        assert client.app.state.freshness.last_checked_at is not None

    def test_sitemap_refresh_registers_urls(self, repository, make_client):
        make_client().post("/api/cron/sitemap-refresh", headers=AUTH)
        with repository.get_conn() as conn:
            rows = repository._fetchall(conn, "SELECT url, priority FROM sitemap_urls ORDER BY priority DESC")
        assert [(r["url"], r["priority"]) for r in rows] == [
            ("/llms.txt", 1.0),
            ("/llms-full.txt", 0.9),
            ("/sitemaps.txt", 0.8),
        ]

    def test_stats(self, make_client):
        client = make_client()
        client.get("/sitemaps.txt")
        stats = client.get("/api/llms-txt/stats", headers=AUTH).json()
        assert stats["access"]["access_count_sitemaps"] == 1
        assert "last_updated" in stats

    def test_health(self, make_client):
        body = make_client().get("/api/health").json()
        assert body["ok"] is True
        assert body["service"] == "forum-llms-txt"
