"""Health endpoint tests."""


def test_liveness(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_reports_database(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"


def test_root(client):
    body = client.get("/").json()

    assert body["name"] == "SocialBot"
    assert body["environment"] == "test"
    assert body["docs"] == "/docs"
