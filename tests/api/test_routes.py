import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from cabinsched.routers import reminders as reminders_router

ORG = "lakeside"
BASE = f"/organizations/{ORG}"


@pytest.fixture
def configured(client):
    response = client.put(
        f"{BASE}/rotation",
        json={"base_year": 2024, "base_order": ["A", "B", "C"], "primary_window_days": 14},
    )
    assert response.status_code == 200
    return response.json()


def utc_today():
    return datetime.utcnow().date()


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


class TestRotationRoutes:
    def test_missing_config(self, client):
        assert client.get(f"{BASE}/rotation").status_code == 404

    def test_duplicate_groups_rejected(self, client):
        response = client.put(
            f"{BASE}/rotation", json={"base_year": 2024, "base_order": ["A", "A"]}
        )
        assert response.status_code == 400

    def test_duplicates_after_trimming_rejected(self, client):
        response = client.put(
            f"{BASE}/rotation", json={"base_year": 2024, "base_order": ["A", " A"]}
        )
        assert response.status_code == 400

    def test_legacy_flags_are_not_duplicates(self, client):
        response = client.put(
            f"{BASE}/rotation",
            json={"base_year": 2024, "base_order": ["A", "", "B", ""]},
        )
        assert response.status_code == 200
        assert response.json()["base_order"] == ["A", "B"]

    def test_resolved_order(self, client, configured):
        body = client.get(f"{BASE}/rotation/order", params={"year": 2026}).json()
        assert body["order"] == ["C", "A", "B"]
        assert body["allocation_mode"] == "rotating_selection"

    def test_bad_direction_policy(self, client):
        response = client.put(
            f"{BASE}/rotation",
            json={"base_year": 2024, "base_order": ["A"], "direction_policy": "sideways"},
        )
        assert response.status_code == 422


class TestPeriodRoutes:
    def test_generate_is_idempotent(self, client, configured):
        first = client.post(f"{BASE}/periods/generate", json={"selection_year": 2025}).json()
        second = client.post(f"{BASE}/periods/generate", json={"selection_year": 2025}).json()

        assert first["rotation_year"] == 2026
        assert [p["group_name"] for p in first["periods"]] == ["C", "A", "B"]
        assert first["periods"][0]["start_date"] == "2025-10-01"
        assert first["periods"][0]["end_date"] == "2025-10-14"
        assert first == second

    def test_generate_without_config(self, client):
        response = client.post(f"{BASE}/periods/generate", json={"selection_year": 2025})
        assert response.status_code == 404

    def test_complete(self, client, configured):
        periods = client.post(f"{BASE}/periods/generate", json={"selection_year": 2025}).json()
        period_id = periods["periods"][1]["id"]

        body = client.post(f"{BASE}/periods/{period_id}/complete").json()

        assert body["completed"] is True
        assert client.post(f"{BASE}/periods/9999/complete").status_code == 404

    def test_export_csv(self, client, configured):
        client.post(f"{BASE}/periods/generate", json={"selection_year": 2025})

        response = client.get(f"{BASE}/periods/export", params={"year": 2026, "format": "csv"})

        assert response.status_code == 200
        lines = response.text.strip().splitlines()
        assert lines[0] == "phase,sequence_index,group_name,start_date,end_date,completed"
        assert lines[1].startswith("primary,0,C,2025-10-01,2025-10-14")

    def test_export_ics(self, client, configured):
        client.post(f"{BASE}/periods/generate", json={"selection_year": 2025})

        text = client.get(f"{BASE}/periods/export", params={"year": 2026, "format": "ics"}).text

        assert text.count("BEGIN:VEVENT") == 3
        assert "DTEND;VALUE=DATE:20251015" in text

    def test_export_empty_year(self, client, configured):
        assert client.get(f"{BASE}/periods/export", params={"year": 2030}).status_code == 404


class TestSelectionRoutes:
    def test_active_pointer(self, client, configured):
        client.post(f"{BASE}/periods/generate", json={"selection_year": 2025})

        body = client.put(
            f"{BASE}/selection/active", json={"rotation_year": 2026, "current_group": "A"}
        ).json()

        assert body["phase"] == "primary"
        assert body["active_group"] == "A"
        assert [q["group_name"] for q in body["upcoming_queue"]] == ["B", "C"]

    def test_active_pointer_must_be_in_order(self, client, configured):
        response = client.put(
            f"{BASE}/selection/active", json={"rotation_year": 2026, "current_group": "Zed"}
        )
        assert response.status_code == 400

    def test_secondary_flow(self, client, configured):
        for group in ("A", "B", "C"):
            client.put(
                f"{BASE}/selection/usage",
                json={"rotation_year": 2026, "group_name": group, "primary_used": 2},
            )

        state = client.get(f"{BASE}/selection", params={"year": 2026}).json()
        assert state["label"] == "secondary_not_started"

        started = client.post(f"{BASE}/selection/secondary/start", json={"rotation_year": 2026})
        assert started.status_code == 200
        # 2026 order C, A, B runs backwards from B
        assert started.json()["current_group"] == "B"

        again = client.post(f"{BASE}/selection/secondary/start", json={"rotation_year": 2026})
        assert again.status_code == 409

        client.post(f"{BASE}/selection/secondary/complete-turn", json={"rotation_year": 2026})
        advanced = client.post(f"{BASE}/selection/secondary/advance", json={"rotation_year": 2026})
        assert advanced.json()["current_group"] == "A"

        state = client.get(f"{BASE}/selection", params={"year": 2026}).json()
        assert state["label"] == "secondary_active"
        assert state["active_group"] == "A"

        ended = client.post(f"{BASE}/selection/secondary/end", json={"rotation_year": 2026})
        assert ended.json()["current_group"] is None

    def test_secondary_without_config(self, client):
        response = client.post(f"{BASE}/selection/secondary/start", json={"rotation_year": 2026})
        assert response.status_code == 404

    def test_default_secondary_status(self, client):
        body = client.get(f"{BASE}/selection/secondary", params={"year": 2026}).json()
        assert body["started_at"] is None
        assert body["current_group"] is None


class TestEventRoutes:
    def test_reservation_dates_validated(self, client):
        response = client.post(
            f"{BASE}/reservations",
            json={"group_name": "A", "start_date": "2025-09-10", "end_date": "2025-09-08"},
        )
        assert response.status_code == 400

    def test_default_reminder_settings(self, client):
        body = client.get(f"{BASE}/reminder-settings").json()
        assert body["remind_7_day"] is True
        assert body["subject_template"] is None


class TestReminderRoutes:
    def _reserve(self, client, days_ahead, group="A"):
        start = utc_today() + timedelta(days=days_ahead)
        response = client.post(
            f"{BASE}/reservations",
            json={
                "group_name": group,
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=2)).isoformat(),
            },
        )
        assert response.status_code == 200
        return response.json()

    def test_preview(self, client):
        client.put(
            f"{BASE}/reminder-settings",
            json={"remind_3_day": False, "remind_1_day": False},
        )
        reservation = self._reserve(client, 7)

        body = client.get(f"{BASE}/reminders").json()

        assert [r["id"] for r in body] == [f"reservation:{reservation['id']}:7_day"]
        assert body[0]["send_at"].startswith(utc_today().isoformat())

    def test_new_reservation_shows_up_after_cached_preview(self, client):
        assert client.get(f"{BASE}/reminders").json() == []

        self._reserve(client, 10)

        assert len(client.get(f"{BASE}/reminders").json()) == 3

    def test_settings_change_invalidates_preview(self, client):
        self._reserve(client, 10)
        assert len(client.get(f"{BASE}/reminders").json()) == 3

        client.put(f"{BASE}/reminder-settings", json={"reservation_reminders_enabled": False})

        assert client.get(f"{BASE}/reminders").json() == []

    def test_horizon_bounds(self, client):
        assert client.get(f"{BASE}/reminders", params={"horizon_days": 0}).status_code == 422

    def test_dispatch_without_target(self, client):
        self._reserve(client, 10)
        body = client.post(f"{BASE}/reminders/dispatch").json()
        assert body == {"organization_id": ORG, "dispatched": 0, "error": None}

    def test_dispatch_reads_the_store_off_the_event_loop(self, client, monkeypatch):
        seen = []
        build = reminders_router.cached_reminders

        def recording(*args):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return build(*args)

        monkeypatch.setattr(reminders_router, "cached_reminders", recording)
        self._reserve(client, 10)

        assert client.post(f"{BASE}/reminders/dispatch").status_code == 200
        assert seen == ["worker thread"]

    def test_dispatch_failure_is_reported(self, client, monkeypatch):
        async def failing(organization_id, reminders):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(reminders_router, "dispatch_reminders", failing)
        self._reserve(client, 10)

        body = client.post(f"{BASE}/reminders/dispatch").json()

        assert body["dispatched"] == 0
        assert "connection refused" in body["error"]
