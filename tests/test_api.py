"""API tests through FastAPI's TestClient."""

import uuid
import warnings

import httpx
import pytest
from pydantic.warnings import PydanticDeprecatedSince20

from socialbot.core import repositories as repo

from conftest import GRAPH_URL, graph_error

TEMPLATE_POST = "Check out our latest insights on AI in Healthcare! 🚀 Stay tuned for more updates."


@pytest.fixture
def facebook_settings(app_settings):
    app_settings.facebook_page_id = "env-page"
    app_settings.facebook_page_access_token = "env-token"
    return app_settings


class TestErrors:

    def test_unknown_post_is_404(self, client):
        response = client.delete(f"/api/posts/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"error": "Post not found"}

    def test_malformed_id_is_404(self, client):
        response = client.patch("/api/posts/not-a-uuid", json={"content": "x"})

        assert response.status_code == 404
        assert "error" in response.json()

    def test_malformed_json_is_400(self, client):
        response = client.post(
            "/api/trends", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_field_is_400(self, client):
        response = client.post("/api/post-to-facebook", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing postId"}


class TestTrends:

    def test_manual_trend(self, client):
        response = client.post("/api/trends", json={"topic": "  Monsoon Travel "})

        assert response.status_code == 201
        body = response.json()
        assert body["topic"] == "Monsoon Travel"
        assert body["source"] == "manual"
        assert body["used"] is False

        listed = client.get("/api/trends").json()
        assert [t["id"] for t in listed] == [body["id"]]

    def test_blank_topic_rejected(self, client):
        response = client.post("/api/trends", json={"topic": "  "})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing topic"}

    def test_generate_trends_falls_back_to_static_topics(self, client, upstream):
        response = client.post("/api/generate-trends")

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "fallback"
        assert body["count"] == 5
        assert all(t["source"] == "fallback" for t in body["trends"])
        assert len(client.get("/api/trends").json()) == 5
        assert upstream.requests == []

    def test_repeated_generation_skips_existing_topics(self, client, run_db):
        run_db(lambda s: repo.create_trend(s, "remote work tips"))

        first = client.post("/api/generate-trends").json()
        second = client.post("/api/generate-trends").json()

        assert first["count"] == 4
        assert "Remote Work Tips" not in [t["topic"] for t in first["trends"]]
        assert second == {
            "trends": [],
            "source": "fallback",
            "count": 0,
            "message": "All topics already exist",
        }
        topics = [t["topic"].lower() for t in client.get("/api/trends").json()]
        assert len(topics) == len(set(topics)) == 5


class TestPosts:

    def test_partial_update_keeps_schedule(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Original", scheduled_time=None))
        client.patch(f"/api/posts/{post.id}", json={"scheduledTime": "2030-01-01T09:30:00Z"})

        response = client.patch(f"/api/posts/{post.id}", json={"content": "Edited"})

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "Edited"
        assert body["scheduled_time"].startswith("2030-01-01T09:30:00")

    def test_blank_content_rejected(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Original"))

        response = client.patch(f"/api/posts/{post.id}", json={"content": "   "})

        assert response.status_code == 400

    def test_null_content_rejected(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Original"))

        response = client.patch(f"/api/posts/{post.id}", json={"content": None})

        assert response.status_code == 400
        assert "content" in response.json()["error"]
        assert client.get("/api/posts").json()[0]["content"] == "Original"

    def test_delete(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Bye"))

        assert client.delete(f"/api/posts/{post.id}").json() == {"success": True}
        assert client.get("/api/posts").json() == []

    def test_generate_post_uses_template_when_providers_fail(self, client, run_db):
        trend = run_db(lambda s: repo.create_trend(s, "AI in Healthcare"))

        response = client.post("/api/generate-post", json={"trendId": str(trend.id), "topic": "AI in Healthcare"})

        assert response.status_code == 201
        body = response.json()
        assert body["content"] == TEMPLATE_POST
        assert body["trend_id"] == str(trend.id)
        assert body["posted"] is False

        assert client.get("/api/posts").json()[0]["content"] == TEMPLATE_POST
        assert client.get("/api/trends").json()[0]["used"] is True

    def test_generate_post_topic_from_trend(self, client, run_db):
        trend = run_db(lambda s: repo.create_trend(s, "AI in Healthcare"))

        response = client.post("/api/generate-post", json={"trendId": str(trend.id)})

        assert response.json()["content"] == TEMPLATE_POST

    def test_generate_post_unknown_trend(self, client):
        response = client.post("/api/generate-post", json={"trendId": str(uuid.uuid4())})

        assert response.status_code == 404

    def test_generate_post_requires_trend_or_topic(self, client):
        response = client.post("/api/generate-post", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing trendId or topic"}


class TestSettings:

    def test_empty_then_upsert(self, client):
        assert client.get("/api/settings").json() == {}

        response = client.patch("/api/settings", json={"auto_post_enabled": True, "max_posts_per_day": 5})

        assert response.status_code == 200
        assert response.json()["auto_post_enabled"] is True

        stored = client.get("/api/settings").json()
        assert stored["max_posts_per_day"] == 5
        assert stored["id"] == response.json()["id"]

    def test_negative_limit_rejected(self, client):
        assert client.patch("/api/settings", json={"max_posts_per_day": -1}).status_code == 400

    @pytest.mark.parametrize("field", ["auto_post_enabled", "max_posts_per_day"])
    def test_null_flag_rejected_once_row_exists(self, client, field):
        client.patch("/api/settings", json={"auto_post_enabled": True})

        response = client.patch("/api/settings", json={field: None})

        assert response.status_code == 400
        assert field in response.json()["error"]
        assert client.get("/api/settings").json()["auto_post_enabled"] is True

    def test_settings_calls_use_current_pydantic_api(self, client):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            client.patch("/api/settings", json={"auto_post_enabled": True})
            client.get("/api/settings")
            client.post("/api/generate-trends")

        assert not [w for w in caught if issubclass(w.category, PydanticDeprecatedSince20)]


class TestFacebook:

    def test_publish(self, client, run_db, upstream, facebook_settings):
        upstream.add("POST", f"{GRAPH_URL}/env-page/feed", httpx.Response(200, json={"id": "env-page_1"}))
        post = run_db(lambda s: repo.create_post(s, content="Hello"))

        response = client.post("/api/post-to-facebook", json={"postId": str(post.id)})

        assert response.json() == {"success": True, "facebookPostId": "env-page_1"}
        assert client.get("/api/posts").json()[0]["posted"] is True

    def test_already_posted(self, client, run_db, upstream, facebook_settings):
        async def published(session):
            post = await repo.create_post(session, content="Hello")
            await repo.mark_post_published(session, post.id, "existing")
            return post

        post = run_db(published)

        response = client.post("/api/post-to-facebook", json={"postId": str(post.id)})

        assert response.status_code == 500
        assert response.json() == {"error": "Already posted"}
        assert upstream.requests == []

    def test_publish_without_credentials(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Hello"))

        response = client.post("/api/post-to-facebook", json={"postId": str(post.id)})

        assert response.status_code == 500
        assert response.json() == {"error": "Facebook credentials not configured"}

    def test_fetch_engagement_requires_facebook_id(self, client, run_db, facebook_settings):
        post = run_db(lambda s: repo.create_post(s, content="Hello"))

        response = client.post("/api/fetch-engagement", json={"postId": str(post.id)})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing facebookPostId"}

    def test_connection_rejected(self, client, upstream):
        upstream.add("GET", f"{GRAPH_URL}/p-1", graph_error("Invalid OAuth access token."))

        response = client.post("/api/test-connection", json={"pageId": "p-1", "accessToken": "bad"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Invalid OAuth access token."}

    def test_auto_post_disabled(self, client):
        assert client.post("/api/auto-post").json() == {"message": "Auto post disabled"}


class TestAutoreply:

    def test_static_reply_stored(self, client, run_db):
        post = run_db(lambda s: repo.create_post(s, content="Hello"))

        response = client.post("/api/generate-autoreply", json={"comment": "Love it", "postId": str(post.id)})

        assert response.status_code == 201
        body = response.json()
        assert body["comment"] == "Love it"
        assert body["post_id"] == str(post.id)
        assert body["reply"].startswith("Thanks so much for your comment!")

    def test_comment_required(self, client):
        response = client.post("/api/generate-autoreply", json={"comment": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing comment"}
