from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from slowapi.errors import RateLimitExceeded

from clientportal.rate_limit import limiter, rate_limit_exceeded_handler


def test_rate_limit_exceeded_returns_429():
    app = FastAPI()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.get("/limited")
    @limiter.limit("1/minute")
    def limited(request: Request):
        return {"ok": True}

    limiter.reset()
    client = TestClient(app)
    assert client.get("/limited").status_code == 200
    response = client.get("/limited")
    assert response.status_code == 429
    body = response.json()
    assert body["error_code"] == "RATE_LIMIT_EXCEEDED"


def test_invite_endpoint_is_limited(client, auth_headers):
    for _ in range(30):
        response = client.post(
            "/api/admin/clients", json={"action": "invite", "email": "flood@test.com"}, headers=auth_headers
        )
        assert response.status_code == 201
    response = client.post(
        "/api/admin/clients", json={"action": "invite", "email": "flood@test.com"}, headers=auth_headers
    )
    assert response.status_code == 429
