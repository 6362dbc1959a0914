#!/usr/bin/env python3
"""
HTTP tests for the portal API using FastAPI's TestClient.

The app is built with an injected reference set and in-memory store, and
the midnight reset thread disabled.

Run with: pytest tests/test_api.py -v
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from fraudboard._version import __version__
from fraudboard.api import create_app
from fraudboard.auth import issue_token
from fraudboard.config import PortalConfig


@pytest.fixture
def config(secret):
    return PortalConfig(jwt_secret=secret, max_daily_uploads=3, max_file_size=2048,
                        store_backend="memory", quota_timezone="UTC")


@pytest.fixture
def app(config, reference, store):
    return create_app(config, reference=reference, store=store, start_scheduler=False)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def auth(secret):
    return {"Authorization": f"Bearer {issue_token('alice', secret)}"}


@pytest.fixture
def good_csv(make_csv):
    return make_csv(["isFraud"], [[1], [0], [0], [1]])


def _upload(client, headers, content, filename="predictions.csv", content_type="text/csv"):
    return client.post("/upload", headers=headers, files={"file": (filename, content, content_type)})


class TestUpload:

    def test_scores_upload(self, client, auth, good_csv):
        resp = _upload(client, auth, good_csv)
        assert resp.status_code == 200
        body = resp.json()
        assert body["f1_score"] == pytest.approx(0.8)
        assert body["accuracy"] == pytest.approx(0.75)
        assert body["uploadsRemaining"] == 2
        assert "timestamp" in body

    def test_requires_token(self, client, good_csv):
        resp = _upload(client, {}, good_csv)
        assert resp.status_code == 401
        assert "error" in resp.json()

    def test_rejects_bad_token(self, client, good_csv):
        resp = _upload(client, {"Authorization": "Bearer not-a-jwt"}, good_csv)
        assert resp.status_code == 403

    def test_rejects_expired_token(self, client, secret, good_csv):
        token = issue_token("alice", secret, expires_in=timedelta(seconds=-10))
        resp = _upload(client, {"Authorization": f"Bearer {token}"}, good_csv)
        assert resp.status_code == 403

    def test_no_file(self, client, auth):
        resp = client.post("/upload", headers=auth, data={"other": "x"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "No file uploaded"}

    def test_non_csv_rejected(self, client, auth, good_csv):
        resp = _upload(client, auth, good_csv, filename="preds.xlsx", content_type="application/octet-stream")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Only CSV files are allowed"

    def test_csv_extension_without_csv_mimetype(self, client, auth, good_csv):
        resp = _upload(client, auth, good_csv, filename="PREDS.CSV", content_type="application/octet-stream")
        assert resp.status_code == 200

    def test_row_count_mismatch_is_422(self, client, auth, make_csv):
        resp = _upload(client, auth, make_csv(["isFraud"], [[1], [0], [1]]))
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "Row count mismatch"
        assert "3" in body["details"] and "4" in body["details"]

    def test_invalid_value_is_422(self, client, auth, make_csv):
        resp = _upload(client, auth, make_csv(["isFraud"], [[1], [0], ["yes"], [1]]))
        assert resp.status_code == 422
        assert "row 3" in resp.json()["error"]

    def test_missing_column_is_422(self, client, auth, make_csv):
        resp = _upload(client, auth, make_csv(["label"], [[1], [0], [1], [1]]))
        assert resp.status_code == 422

    def test_file_too_large_is_413(self, client, auth):
        resp = _upload(client, auth, b"isFraud\n" + b"1\n" * 2048)
        assert resp.status_code == 413
        assert "File too large" in resp.json()["error"]

    def test_quota_exceeded_is_429(self, client, auth, good_csv):
        for _ in range(3):
            assert _upload(client, auth, good_csv).status_code == 200
        resp = _upload(client, auth, good_csv)
        assert resp.status_code == 429
        body = resp.json()
        assert "limit" in body["error"]
        assert "T23:59:59.999" in body["nextReset"]

    def test_rejected_upload_does_not_use_quota(self, client, auth, good_csv, make_csv):
        _upload(client, auth, make_csv(["isFraud"], [[1]]))
        assert _upload(client, auth, good_csv).json()["uploadsRemaining"] == 2


class TestLeaderboard:

    def test_empty(self, client):
        resp = client.get("/leaderboard")
        assert resp.status_code == 200
        assert resp.json()["leaderboard"] == []

    def test_ranks_best_scores(self, client, secret, good_csv, make_csv):
        bob = {"Authorization": f"Bearer {issue_token('bob', secret)}"}
        alice = {"Authorization": f"Bearer {issue_token('alice', secret)}"}
        _upload(client, alice, good_csv)
        _upload(client, bob, make_csv(["isFraud"], [[1], [0], [1], [1]]))

        rows = client.get("/leaderboard").json()["leaderboard"]

        assert [r["user_id"] for r in rows] == ["bob", "alice"]
        assert rows[0]["rank"] == 1
        assert rows[0]["f1_score"] == pytest.approx(1.0)

    def test_limit_parameter(self, client, store, noon):
        for i in range(8):
            store.put_score(f"user{i}", i / 10, 0.5, noon)
        assert len(client.get("/leaderboard?limit=3").json()["leaderboard"]) == 3
        assert len(client.get("/leaderboard?limit=0").json()["leaderboard"]) == 5
        assert len(client.get("/leaderboard?limit=abc").json()["leaderboard"]) == 5


class TestReads:

    def test_scores_history_and_stats(self, client, auth, good_csv):
        _upload(client, auth, good_csv)
        resp = client.get("/scores", headers=auth)
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["scores"]) == 1
        assert body["stats"] == {
            "total_submissions": 1,
            "best_f1": pytest.approx(0.8),
            "uploads_today": 1,
            "uploads_remaining": 2,
        }

    def test_scores_requires_token(self, client):
        assert client.get("/scores").status_code == 401

    def test_row_count(self, client):
        assert client.get("/row-count").json() == {"rowCount": 4}

    def test_upload_format(self, client):
        body = client.get("/upload-format").json()
        assert body["rowCount"] == 4
        assert "isFraud" in body["acceptedLabelColumns"]

    def test_verify_token(self, client, auth):
        body = client.get("/verify-token", headers=auth).json()
        assert body == {"authenticated": True, "user": {"username": "alice", "isAdmin": False}}

    def test_health(self, client):
        assert client.get("/health").json() == {
            "status": "OK",
            "version": __version__,
            "database": "connected",
        }

    def test_health_reports_disconnected_store(self, client, store):
        with patch.object(store, "ping", side_effect=RuntimeError("down")):
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "disconnected"


class TestErrors:

    def test_unexpected_error_hides_message_in_prod(self, client, store):
        with patch.object(store, "list_scores", side_effect=RuntimeError("boom")):
            resp = client.get("/leaderboard")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_dev_mode_includes_message(self, reference, store, secret):
        config = PortalConfig(jwt_secret=secret, store_backend="memory", env="dev")
        app = create_app(config, reference=reference, store=store, start_scheduler=False)
        with TestClient(app, raise_server_exceptions=False) as client:
            with patch.object(store, "list_scores", side_effect=RuntimeError("boom")):
                resp = client.get("/leaderboard")
        assert resp.status_code == 500
        assert "boom" in resp.json()["message"]


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
