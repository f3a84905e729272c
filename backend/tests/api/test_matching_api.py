# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the admission endpoints.
"""

from datetime import timedelta

from fastapi.testclient import TestClient

from ventmatch.core.clock import utc_now
from ventmatch.schemas.moderation import Restriction, RestrictionKind


class TestJoinMatching:
    """Tests for POST /api/match."""

    def test_first_participant_is_queued(self, test_client: TestClient, test_settings):
        response = test_client.post(
            "/api/match", json={"participant_id": "S1", "role": "speaker"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "queued"
        assert data["queue_depths"] == {"speaker": 1, "listener": 0}
        assert data["estimated_wait_seconds"] == test_settings.WAIT_ESTIMATE_FLOOR_SECONDS

    def test_opposite_role_is_matched(self, test_client: TestClient, container):
        test_client.post("/api/match", json={"participant_id": "S1", "role": "speaker"})

        response = test_client.post(
            "/api/match", json={"participant_id": "L1", "role": "listener"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "matched"
        assert data["role"] == "listener"
        assert data["session_id"]

        stats = test_client.get("/api/match/stats").json()
        assert stats["total"] == 0

    def test_participant_in_session_conflicts(self, test_client: TestClient):
        test_client.post("/api/match", json={"participant_id": "S1", "role": "speaker"})
        test_client.post("/api/match", json={"participant_id": "L1", "role": "listener"})

        response = test_client.post(
            "/api/match", json={"participant_id": "S1", "role": "speaker"}
        )

        assert response.status_code == 409

    def test_restricted_participant_gets_403(self, test_client: TestClient, container):
        now = utc_now()
        container.moderation_repository.replace_restriction(
            Restriction(
                id="r1",
                subject_id="S1",
                kind=RestrictionKind.TEMPORARY_BAN,
                start_time=now,
                end_time=now + timedelta(minutes=30),
                reason="Automatic restriction applied due to 3 reports. Risk level: high",
                triggering_report_count=3,
            )
        )

        response = test_client.post(
            "/api/match", json={"participant_id": "S1", "role": "speaker"}
        )

        assert response.status_code == 403
        data = response.json()
        assert data["detail"].startswith("You are temporarily restricted")
        assert data["restriction"]["type"] == "temporary_ban"
        assert data["restriction"]["time_remaining"] == "30 minutes"

    def test_invalid_role(self, test_client: TestClient):
        response = test_client.post(
            "/api/match", json={"participant_id": "S1", "role": "venter"}
        )

        assert response.status_code == 422


class TestMatchStatsAndCancel:
    """Tests for GET /api/match/stats and DELETE /api/match/{id}."""

    def test_stats(self, test_client: TestClient):
        test_client.post("/api/match", json={"participant_id": "S1", "role": "speaker"})
        test_client.post("/api/match", json={"participant_id": "S2", "role": "speaker"})

        response = test_client.get("/api/match/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["waiting_by_role"] == {"speaker": 2, "listener": 0}
        assert data["total"] == 2
        assert data["backend"] == "local"

    def test_cancel(self, test_client: TestClient):
        test_client.post("/api/match", json={"participant_id": "S1", "role": "speaker"})

        response = test_client.delete("/api/match/S1")
        assert response.status_code == 200
        assert response.json() == {"participant_id": "S1", "cancelled": True}

        again = test_client.delete("/api/match/S1")
        assert again.json()["cancelled"] is False
