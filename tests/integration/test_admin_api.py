"""
Integration tests for Admin API endpoints
"""

import pytest
from datetime import datetime, timedelta, timezone

SEASON = 2025


@pytest.fixture
async def dual_channel_week(client, admin_headers):
    """dave: an auth pick on m1 and a claimed anonymous pick on m2, both week 5."""
    kickoff = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    for matchup_id in ("m1", "m2"):
        await client.put(
            f"/matchups/{matchup_id}",
            json={
                "season": SEASON, "week": 5, "home_team": "KC", "away_team": "BUF",
                "spread": -7.0, "kickoff_time": kickoff,
            },
            headers=admin_headers
        )

    await client.post("/picks", json={"user_id": "dave", "matchup_id": "m1", "selected_side": "home"})
    await client.post(
        "/anonymous-picks",
        json={"email": "dave@example.com", "matchup_id": "m2", "selected_side": "home"}
    )
    await client.post(
        "/anonymous-picks/claim-set",
        json={"email": "dave@example.com", "season": SEASON, "week": 5, "user_id": "dave"},
        headers=admin_headers
    )


async def final(client, admin_headers, matchup_id, home, away):
    return await client.post(
        f"/matchups/{matchup_id}/state",
        json={"home_score": home, "away_score": away, "status": "completed"},
        headers=admin_headers
    )


class TestAdminAccess:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path", [
        ("get", f"/admin/audit?season={SEASON}"),
        ("get", f"/admin/conflicts?season={SEASON}"),
        ("post", "/admin/rebuild"),
        ("put", "/admin/eligibility"),
    ])
    async def test_requires_admin_key(self, client, method, path):
        response = await client.request(method.upper(), path, headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_header_is_forbidden(self, client):
        response = await client.post("/admin/rebuild", json={"season": SEASON})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_closed_when_no_key_is_configured(self, client, settings, admin_headers):
        # Setup - the app without ADMIN_API_KEY
        settings.admin_api_key = None

        # Act
        rebuild = await client.post("/admin/rebuild", json={"season": SEASON})
        with_header = await client.post(
            "/admin/rebuild", json={"season": SEASON}, headers=admin_headers
        )
        state = await client.post(
            "/matchups/m1/state",
            json={"home_score": 1, "away_score": 0, "status": "completed"}
        )

        # Assert
        assert rebuild.status_code == 403
        assert with_header.status_code == 403
        assert state.status_code == 403


class TestPrecedenceEndpoints:
    """Test suite for /admin/precedence and /admin/conflicts."""

    @pytest.mark.asyncio
    async def test_conflict_then_decision(self, client, admin_headers, dual_channel_week):
        response = await client.get(f"/admin/conflicts?season={SEASON}", headers=admin_headers)
        conflicts = response.json()
        assert len(conflicts) == 1
        assert conflicts[0]["state"] == "unresolved"
        assert conflicts[0]["candidate_pick_set_ids"] == ["auth", "anon:dave@example.com"]

        response = await client.put(
            "/admin/precedence",
            json={"user_id": "dave", "season": SEASON, "week": 5, "pick_set_id": "anonymous"},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["aggregates_stale"] is False

        response = await client.get(
            f"/admin/conflicts?season={SEASON}&unresolved_only=true", headers=admin_headers
        )
        assert response.json() == []

        response = await client.get(f"/leaderboard/weekly/{SEASON}/5")
        [entry] = response.json()["entries"]
        assert entry["pick_sources"] == ["anon:dave@example.com"]

    @pytest.mark.asyncio
    async def test_invalid_pick_set(self, client, admin_headers):
        response = await client.put(
            "/admin/precedence",
            json={"user_id": "dave", "season": SEASON, "pick_set_id": "both"},
            headers=admin_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_clear_missing_preference(self, client, admin_headers):
        response = await client.delete(f"/admin/precedence/dave/{SEASON}?week=5", headers=admin_headers)
        assert response.status_code == 404


class TestVisibilityAndEligibility:

    @pytest.mark.asyncio
    async def test_hide_pick(self, client, admin_headers, dual_channel_week):
        await client.put(
            "/admin/precedence",
            json={"user_id": "dave", "season": SEASON, "pick_set_id": "auth"},
            headers=admin_headers
        )

        response = await client.put(
            "/admin/picks/dave:m1/visibility", json={"visible": False}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["visible"] is False
        response = await client.get(f"/leaderboard/weekly/{SEASON}/5")
        assert response.json()["entries"] == []

    @pytest.mark.asyncio
    async def test_hide_missing_pick(self, client, admin_headers):
        response = await client.put(
            "/admin/picks/nope/visibility", json={"visible": False}, headers=admin_headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_ineligible_user_hidden_from_rankings(self, client, admin_headers):
        kickoff = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
        await client.put(
            "/matchups/m1",
            json={
                "season": SEASON, "week": 5, "home_team": "KC", "away_team": "BUF",
                "spread": -7.0, "kickoff_time": kickoff,
            },
            headers=admin_headers
        )
        await client.post("/picks", json={"user_id": "alice", "matchup_id": "m1", "selected_side": "home"})

        response = await client.put(
            "/admin/eligibility",
            json={"user_id": "alice", "season": SEASON, "eligible": False},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["eligible"] is False
        response = await client.get(f"/leaderboard/season/{SEASON}")
        assert response.json()["entries"] == []
        response = await client.get(f"/leaderboard/season/{SEASON}?include_ineligible=true")
        [entry] = response.json()["entries"]
        assert entry["rank"] is None
        assert entry["is_eligible"] is False


class TestRebuildAndAudit:

    @pytest.mark.asyncio
    async def test_audit_repair_rebuild(self, client, admin_headers, test_db, dual_channel_week):
        await client.put(
            "/admin/precedence",
            json={"user_id": "dave", "season": SEASON, "pick_set_id": "auth"},
            headers=admin_headers
        )
        await final(client, admin_headers, "m1", 31, 10)
        await test_db["leaderboard"].update_one(
            {"_id": f"week:{SEASON}:5:dave"}, {"$set": {"total_points": 0}}
        )

        response = await client.get(f"/admin/audit?season={SEASON}&week=5", headers=admin_headers)
        report = response.json()
        assert [m["kind"] for m in report["mismatches"]] == ["aggregate_mismatch"]

        response = await client.post(
            "/admin/audit/repair", json={"season": SEASON, "week": 5}, headers=admin_headers
        )
        assert response.json()["mismatches_found"] == 1

        response = await client.get(f"/admin/audit?season={SEASON}", headers=admin_headers)
        assert response.json()["mismatches"] == []

        response = await client.post("/admin/rebuild", json={"season": SEASON}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["matchups_regraded"] == 2
        assert response.json()["aggregates_stale"] is False

        response = await client.get(f"/leaderboard/weekly/{SEASON}/5")
        [entry] = response.json()["entries"]
        assert entry["total_points"] == 21
