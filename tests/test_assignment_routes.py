"""Integration tests for api/routes/v1/assignments.py.

Covers:
- Only lecturer, courseAdviser and admin can set assignments
- time_remaining is computed on every read
- admission_year filter matches any targeted intake
- Ownership on edit / delete / archive / unarchive
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

URL = "/api/v1/assignments"


def _deadline(**delta) -> str:
    return (datetime.now(timezone.utc) + timedelta(**delta)).isoformat()


def _set(api_env, author: str = "lecturer", **overrides) -> dict:
    body = {
        "title": "Compiler lab 1",
        "description": "Implement a lexer for the toy language.",
        "deadline": _deadline(days=3, hours=2),
        "admission_years": ["2022"],
        **overrides,
    }
    resp = api_env.client.post(URL, json=body, headers=api_env.headers[author])
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()["data"]


class TestCreate:
    @pytest.mark.parametrize("author", ["admin", "lecturer", "adviser"])
    def test_allowed_roles(self, api_env, author):
        data = _set(api_env, author)
        assert data["created_by"] == api_env.ids[author]

    @pytest.mark.parametrize("caller", ["student", "student_admin"])
    def test_students_cannot_set_assignments(self, api_env, caller):
        resp = api_env.client.post(
            URL,
            json={"title": "Nope", "description": "x", "deadline": _deadline(days=1), "admission_years": ["2022"]},
            headers=api_env.headers[caller],
        )
        assert resp.status_code == 403

    def test_time_remaining(self, api_env):
        data = _set(api_env, deadline=_deadline(days=3, hours=2, minutes=30))
        remaining = data["time_remaining"]
        assert remaining["days"] == 3
        assert remaining["hours"] == 2
        assert 28 <= remaining["minutes"] <= 30

    def test_past_deadline_reports_zero(self, api_env):
        data = _set(api_env, deadline=_deadline(days=-1))
        assert data["time_remaining"] == {"days": 0, "hours": 0, "minutes": 0}

    def test_admission_years_required(self, api_env):
        resp = api_env.client.post(
            URL,
            json={"title": "Lab", "description": "x", "deadline": _deadline(days=1), "admission_years": []},
            headers=api_env.headers["lecturer"],
        )
        assert resp.status_code == 400

    def test_invalid_admission_year(self, api_env):
        resp = api_env.client.post(
            URL,
            json={"title": "Lab", "description": "x", "deadline": _deadline(days=1), "admission_years": ["19x9"]},
            headers=api_env.headers["lecturer"],
        )
        assert resp.status_code == 400


class TestRead:
    def test_filter_by_intake(self, api_env):
        _set(api_env, title="Intake filter target", admission_years=["2021", "2025"])
        headers = api_env.headers["student"]
        hits = api_env.client.get(f"{URL}?admission_year=2025", headers=headers).json()["data"]
        assert [a["title"] for a in hits] == ["Intake filter target"]

    def test_get_one(self, api_env):
        created = _set(api_env)
        resp = api_env.client.get(f"{URL}/{created['id']}", headers=api_env.headers["student"])
        assert resp.status_code == 200
        assert resp.json()["data"]["description"] == created["description"]
        assert "time_remaining" in resp.json()["data"]

    def test_get_missing(self, api_env):
        assert api_env.client.get(f"{URL}/424242", headers=api_env.headers["student"]).status_code == 404


class TestOwnershipAndLifecycle:
    def test_owner_updates_deadline_and_years(self, api_env):
        created = _set(api_env)
        resp = api_env.client.patch(
            f"{URL}/{created['id']}",
            json={"deadline": _deadline(days=10), "admission_years": ["2023"]},
            headers=api_env.headers["lecturer"],
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["admission_years"] == ["2023"]
        assert data["time_remaining"]["days"] in (9, 10)
        assert data["title"] == created["title"]

    def test_empty_update_is_a_validation_error(self, api_env):
        created = _set(api_env)
        resp = api_env.client.patch(f"{URL}/{created['id']}", json={}, headers=api_env.headers["lecturer"])
        assert resp.status_code == 400

    def test_other_lecturer_is_forbidden(self, api_env):
        created = _set(api_env)
        resp = api_env.client.patch(
            f"{URL}/{created['id']}", json={"title": "Mine now"}, headers=api_env.headers["other_lecturer"]
        )
        assert resp.status_code == 403

    def test_missing_is_404_before_403(self, api_env):
        resp = api_env.client.patch(f"{URL}/424242/archive", headers=api_env.headers["student"])
        assert resp.status_code == 404

    def test_admin_deletes_anyones_assignment(self, api_env):
        created = _set(api_env, "adviser")
        assert api_env.client.delete(f"{URL}/{created['id']}", headers=api_env.headers["admin"]).status_code == 200

    def test_archive_round_trip(self, api_env):
        created = _set(api_env)
        headers = api_env.headers["lecturer"]
        archived = api_env.client.patch(f"{URL}/{created['id']}/archive", headers=headers).json()["data"]
        assert archived["is_archived"] is True
        expires = datetime.fromisoformat(archived["expires_at"])
        assert expires - datetime.fromisoformat(archived["archived_at"]) == timedelta(days=180)

        again = api_env.client.patch(f"{URL}/{created['id']}/archive", headers=headers).json()["data"]
        assert again["archived_at"] == archived["archived_at"]

        restored = api_env.client.patch(f"{URL}/{created['id']}/unarchive", headers=headers).json()["data"]
        assert restored["is_archived"] is False
        assert restored["expires_at"] is None
        assert restored["admission_years"] == created["admission_years"]

    def test_archived_filter(self, api_env):
        created = _set(api_env, title="Archived filter target")
        api_env.client.patch(f"{URL}/{created['id']}/archive", headers=api_env.headers["lecturer"])
        headers = api_env.headers["student"]
        archived = api_env.client.get(f"{URL}?archived=true&title=archived filter", headers=headers).json()["data"]
        active = api_env.client.get(f"{URL}?archived=false&title=archived filter", headers=headers).json()["data"]
        assert [a["id"] for a in archived] == [created["id"]]
        assert active == []
