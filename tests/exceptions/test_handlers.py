from uuid import uuid4

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.exceptions.base import AppError
from app.exceptions.group_exceptions import DuplicateMember, QuotaExceeded
from app.exceptions.handlers import register_exception_handlers


def _client() -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)
    user_id = uuid4()

    @app.get("/quota")
    def quota():
        raise QuotaExceeded(user_id, "free users can own at most 1 group(s)")

    @app.get("/duplicate")
    def duplicate():
        raise DuplicateMember(3, user_id)

    @app.get("/wrapped")
    def wrapped():
        raise AppError

    @app.get("/boom")
    def boom():
        raise RuntimeError("unexpected")

    return TestClient(app, raise_server_exceptions=False)


def test_app_errors_keep_status_and_detail():
    client = _client()

    r = client.get("/quota")
    assert r.status_code == 403
    assert r.json()["detail"].startswith("Free tier limit reached")

    r = client.get("/duplicate")
    assert r.status_code == 409
    assert "already a member of group 3" in r.json()["detail"]

    r = client.get("/wrapped")
    assert r.status_code == 500
    assert r.json() == {"detail": "An unexpected error occurred"}


def test_unhandled_errors_become_500():
    client = _client()

    r = client.get("/boom")

    assert r.status_code == 500
    assert r.json() == {"detail": "An unexpected error occurred."}
