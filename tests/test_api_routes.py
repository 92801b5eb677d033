"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Exercises the callable wire format, the owner document endpoints and the
admin guards through the FastAPI TestClient.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import add_user, auth

from trophyroom.api.auth import issue_token


@pytest.fixture
def users(db_engine):
    add_user(db_engine, "alice", "Ana", unlocked_ids=[1, 2], total_points=30)
    add_user(db_engine, "bob", "Bruno", unlocked_ids=[3], total_points=5)
    add_user(db_engine, "carol", "Carla")


def _call(client, name: str, data: dict | None = None, uid: str | None = "alice", **kw):
    headers = auth(uid, **kw) if uid else {}
    return client.post(f"/api/callable/{name}", json={"data": data or {}}, headers=headers)


def _error(resp) -> dict:
    return resp.json()["error"]


# ===========================================================================
# Health / identity
# ===========================================================================
class TestHealthAndIdentity:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_me(self, client):
        resp = client.get("/api/auth/me", headers=auth("alice"))
        assert resp.json() == {"uid": "alice", "name": "Alice", "admin": False}

    def test_me_without_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert _error(resp)["status"] == "UNAUTHENTICATED"

    def test_garbage_token(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_admin_claim_must_be_true(self, client):
        token = issue_token("alice", admin=False)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.json()["admin"] is False


# ===========================================================================
# Callables — friend graph
# ===========================================================================
class TestFriendCallables:
    def test_send_accept_profile_flow(self, client, users):
        resp = _call(client, "sendFriendRequest", {"toUid": "bob"})
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["success"] is True
        request_id = result["id"]

        denied = _call(client, "getFriendProfile", {"friendUid": "bob"})
        assert denied.status_code == 403
        assert _error(denied)["status"] == "PERMISSION_DENIED"

        accepted = _call(client, "acceptFriendRequest", {"requestId": request_id}, uid="bob")
        assert accepted.json() == {"result": {"success": True}}

        profile = _call(client, "getFriendProfile", {"friendUid": "bob"}).json()["result"]["profile"]
        assert profile["displayName"] == "Bruno"
        assert profile["totalPoints"] == 5

    def test_reverse_request_conflict(self, client, users):
        _call(client, "sendFriendRequest", {"toUid": "bob"})
        resp = _call(client, "sendFriendRequest", {"toUid": "alice"}, uid="bob")
        assert resp.status_code == 409
        err = _error(resp)
        assert err["status"] == "ALREADY_EXISTS"
        assert err["details"] == {"reason": "reverse-pending"}

    def test_unauthenticated(self, client, users):
        resp = _call(client, "sendFriendRequest", {"toUid": "bob"}, uid=None)
        assert resp.status_code == 401
        assert _error(resp)["status"] == "UNAUTHENTICATED"

    def test_missing_argument(self, client, users):
        resp = _call(client, "sendFriendRequest", {})
        assert resp.status_code == 400
        assert _error(resp)["status"] == "INVALID_ARGUMENT"

    def test_missing_data_envelope(self, client, users):
        resp = client.post("/api/callable/acceptFriendRequest", json={}, headers=auth("bob"))
        assert resp.status_code == 400

    def test_unknown_target(self, client, users):
        resp = _call(client, "sendFriendRequest", {"toUid": "ghost"})
        assert resp.status_code == 404
        assert _error(resp)["status"] == "NOT_FOUND"

    def test_reject_by_outsider(self, client, users):
        rid = _call(client, "sendFriendRequest", {"toUid": "bob"}).json()["result"]["id"]
        resp = _call(client, "rejectFriendRequest", {"requestId": rid}, uid="carol")
        assert resp.status_code == 403
        ok = _call(client, "rejectFriendRequest", {"requestId": rid}, uid="alice")
        assert ok.status_code == 200

    def test_unexpected_failure_is_internal(self, client, users):
        with patch(
            "trophyroom.services.friendship_service.send_request",
            side_effect=RuntimeError("boom"),
        ):
            resp = _call(client, "sendFriendRequest", {"toUid": "bob"})
        assert resp.status_code == 500
        err = _error(resp)
        assert err["status"] == "INTERNAL"
        assert "boom" not in err["message"]


# ===========================================================================
# Callables — progress
# ===========================================================================
class TestProgressCallables:
    def test_import_self(self, client, users):
        resp = _call(client, "importUserProgress", {
            "uid": "alice", "unlockedIds": [5], "totalPoints": 50,
        })
        assert resp.json()["result"] == {"success": True, "updatedCount": 3}

    def test_import_null_merge_replaces(self, client, users):
        resp = _call(client, "importUserProgress", {
            "uid": "alice", "unlockedIds": [5], "totalPoints": 50, "merge": None,
        })
        assert resp.json()["result"] == {"success": True, "updatedCount": 1}

    def test_import_without_merge_key_unions(self, client, users):
        resp = _call(client, "importUserProgress", {"uid": "alice", "unlockedIds": [1, 9]})
        assert resp.json()["result"]["updatedCount"] == 3

    def test_import_other_requires_admin(self, client, users):
        data = {"uid": "bob", "unlockedIds": [1], "totalPoints": 1}
        assert _call(client, "importUserProgress", data).status_code == 403
        assert _call(client, "importUserProgress", data, uid="root", admin=True).status_code == 200

    def test_backup_requires_admin(self, client, users):
        resp = _call(client, "backupAllUsers")
        assert resp.status_code == 403
        assert _error(resp)["status"] == "PERMISSION_DENIED"

    def test_backup_as_admin(self, client, users):
        resp = _call(client, "backupAllUsers", {"backupCollectionName": "b1"}, uid="root", admin=True)
        assert resp.json()["result"] == {"success": True, "backedUp": 2}

    def test_leaderboard_is_public(self, client, users):
        resp = _call(client, "getLeaderboard", {"limit": 1}, uid=None)
        board = resp.json()["result"]["leaderboard"]
        assert [row["uid"] for row in board] == ["alice"]


# ===========================================================================
# Documents
# ===========================================================================
class TestDocumentEndpoints:
    def test_progress_roundtrip(self, client, db_engine):
        assert client.get("/api/me/progress", headers=auth()).json() == {"progress": None}
        resp = client.put(
            "/api/me/progress",
            json={"unlockedIds": [1], "totalPoints": 10},
            headers=auth(),
        )
        assert resp.status_code == 200
        got = client.get("/api/me/progress", headers=auth()).json()["progress"]
        assert got["unlockedIds"] == [1]
        assert got["totalPoints"] == 10

    def test_progress_requires_auth(self, client):
        resp = client.get("/api/me/progress")
        assert resp.status_code == 401

    def test_profile_and_search(self, client, users):
        client.put("/api/me/profile", json={"displayName": "Dani"}, headers=auth("dan"))
        assert client.get("/api/profiles/dan", headers=auth()).json()["profile"]["displayName"] == "Dani"

        results = client.get("/api/profiles/search", params={"q": "an"}, headers=auth()).json()["results"]
        assert [r["displayName"] for r in results] == ["Ana"]

    def test_unknown_profile_is_null(self, client, users):
        assert client.get("/api/profiles/ghost", headers=auth()).json() == {"profile": None}

    def test_snapshot_and_changes(self, client, users):
        rid = _call(client, "sendFriendRequest", {"toUid": "bob"}).json()["result"]["id"]
        snap = client.get("/api/me/snapshot", headers=auth("bob")).json()
        assert [r["id"] for r in snap["requests"]] == [rid]
        assert snap["friends"] == []

        _call(client, "acceptFriendRequest", {"requestId": rid}, uid="bob")
        page = client.get(
            "/api/me/changes", params={"after": snap["cursor"]}, headers=auth("bob"),
        ).json()
        kinds = [(c["collection"], c["kind"]) for c in page["changes"]]
        assert ("friendships", "added") in kinds
        assert ("friend_requests", "modified") in kinds
        assert page["cursor"] == page["changes"][-1]["cursor"]

        empty = client.get("/api/me/changes", params={"after": page["cursor"]}, headers=auth("bob"))
        assert empty.json() == {"changes": [], "cursor": page["cursor"]}

    def test_repair_requires_accepted_request(self, client, users):
        resp = client.post("/api/me/friends/bob/repair", headers=auth())
        assert resp.status_code == 403

        rid = _call(client, "sendFriendRequest", {"toUid": "bob"}).json()["result"]["id"]
        _call(client, "acceptFriendRequest", {"requestId": rid}, uid="bob")
        resp = client.post("/api/me/friends/bob/repair", headers=auth())
        assert resp.json() == {"created": False}


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminEndpoints:
    def test_logs_require_admin(self, client):
        assert client.get("/api/admin/logs").status_code == 401
        assert client.get("/api/admin/logs", headers=auth("alice")).status_code == 403

    def test_logs_for_admin(self, client, admin_token):
        resp = client.get("/api/admin/logs", headers={"Authorization": f"Bearer {admin_token}"})
        assert resp.status_code == 200
        assert isinstance(resp.json()["logs"], list)

    def test_bad_level(self, client, admin_token):
        resp = client.put(
            "/api/admin/logs/level",
            json={"level": "LOUD"},
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert resp.status_code == 400

    def test_prune(self, client, admin_token):
        resp = client.post(
            "/api/admin/changes/prune",
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert resp.json() == {"removed": 0}


# ===========================================================================
# Google sign-in
# ===========================================================================
_OAUTH_ENV = {
    "GOOGLE_CLIENT_ID": "cid",
    "GOOGLE_CLIENT_SECRET": "csecret",
    "GOOGLE_REDIRECT_URI": "http://api.test/api/auth/callback",
    "FRONTEND_URL": "http://app.test",
}


class TestOAuth:
    def test_login_redirects_with_state(self, client):
        with patch.dict("os.environ", _OAUTH_ENV):
            resp = client.get("/api/auth/login", follow_redirects=False)
        assert resp.status_code == 307
        location = resp.headers["location"]
        assert location.startswith("https://accounts.google.com/")
        assert "state=" in location
        assert "client_id=cid" in location

    def test_login_unconfigured(self, client):
        with patch.dict("os.environ", {"GOOGLE_CLIENT_ID": ""}):
            resp = client.get("/api/auth/login", follow_redirects=False)
        assert resp.status_code == 500

    def test_callback_rejects_unknown_state(self, client):
        with patch.dict("os.environ", _OAUTH_ENV):
            resp = client.get(
                "/api/auth/callback",
                params={"code": "c", "state": "forged"},
                follow_redirects=False,
            )
        assert resp.status_code == 400
