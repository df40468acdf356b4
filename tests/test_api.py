"""HTTP surface test suite — auth, problem+json errors, leave lifecycle over
the API, monthly caps, notifications, user administration.

Data is seeded through the ``db`` fixture and committed before each request
so the app's own sessions can see it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveCategory, UserRole
from tests.factories import (
    NEXT_YEAR,
    auth_headers,
    create_access_token,
    next_year_date,
    seed_balance,
    seed_leave_types,
    seed_user,
)


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed(db: AsyncSession, *, balances: bool = True) -> dict:
    admin = await seed_user(
        db, role=UserRole.admin,
        created_at=datetime.now(timezone.utc) - timedelta(days=365),
    )
    manager = await seed_user(db, role=UserRole.manager)
    employee = await seed_user(db, first_name="Eve", manager_id=manager.id)
    types = await seed_leave_types(db)
    if balances:
        for lt in types.values():
            await seed_balance(db, employee, lt)
    await db.commit()
    return dict(
        admin=admin,
        manager=manager,
        employee=employee,
        casual=types[LeaveCategory.casual],
        health=types[LeaveCategory.health],
    )


def _body(leave_type, start, end, **extra) -> dict:
    return {
        "leave_type_id": str(leave_type.id),
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        **extra,
    }


async def _submit(client, t, *, days: int = 3) -> dict:
    resp = await client.post(
        "/api/v1/leave",
        json=_body(t["casual"], next_year_date(3, 2), next_year_date(3, 1 + days)),
        headers=auth_headers(t["employee"]),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _assert_problem(resp, status: int, error_type: str) -> dict:
    assert resp.status_code == status, resp.text
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    assert body["status"] == status
    assert body["type"].endswith(f"/{error_type}")
    assert body["instance"].startswith("/api/v1/")
    return body


# ── System ──────────────────────────────────────────────────────────


async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["version"] == "1.0.0"


# ── Authentication ──────────────────────────────────────────────────


async def test_missing_token(client):
    resp = await client.get("/api/v1/leave")
    assert resp.status_code == 401


async def test_expired_token(client, db):
    user = await seed_user(db)
    await db.commit()

    resp = await client.get(
        "/api/v1/users/me",
        headers={"Authorization": f"Bearer {create_access_token(user.id, expired=True)}"},
    )
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"].lower()


async def test_wrong_token_type(client, db):
    user = await seed_user(db)
    await db.commit()

    token = create_access_token(user.id, token_type="refresh")
    resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_token_for_unknown_user(client):
    token = create_access_token(uuid.uuid4())
    resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_garbage_token(client):
    resp = await client.get(
        "/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert resp.status_code == 401


# ── Submission ──────────────────────────────────────────────────────


async def test_submit_leave(client, db):
    t = await _seed(db)

    data = await _submit(client, t)

    assert data["status"] == "pending"
    assert data["total_days"] == 3
    assert data["user"]["first_name"] == "Eve"
    assert data["leave_type"]["category"] == "casual"

    resp = await client.get(
        f"/api/v1/leave/balances?year={NEXT_YEAR}", headers=auth_headers(t["employee"]),
    )
    casual = next(b for b in resp.json() if b["leave_type"]["category"] == "casual")
    assert casual["pending_days"] == 3
    assert casual["remaining_days"] == 9


async def test_submit_insufficient_balance(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/leave",
        json=_body(t["health"], next_year_date(5, 1), next_year_date(5, 13)),
        headers=auth_headers(t["employee"]),
    )

    body = _assert_problem(resp, 400, "insufficient-balance")
    assert "Available: 12" in body["detail"]
    assert "Requested: 13" in body["detail"]


async def test_submit_end_before_start(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/leave",
        json=_body(t["casual"], next_year_date(3, 4), next_year_date(3, 2)),
        headers=auth_headers(t["employee"]),
    )

    _assert_problem(resp, 400, "validation-error")


async def test_submit_malformed_body(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/leave",
        json={"leave_type_id": "nope", "start_date": "soon"},
        headers=auth_headers(t["employee"]),
    )

    body = _assert_problem(resp, 400, "validation-error")
    assert "leave_type_id" in body["errors"]


async def test_submit_unknown_leave_type(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/leave",
        json={
            "leave_type_id": str(uuid.uuid4()),
            "start_date": next_year_date(3, 2).isoformat(),
            "end_date": next_year_date(3, 2).isoformat(),
        },
        headers=auth_headers(t["employee"]),
    )

    _assert_problem(resp, 404, "not-found")


# ── Approval lifecycle ──────────────────────────────────────────────


async def test_two_stage_approval_over_http(client, db):
    t = await _seed(db)
    req = await _submit(client, t)
    rid = req["id"]

    resp = await client.put(
        f"/api/v1/leave/{rid}/approve/manager",
        json={"comment": "ok"},
        headers=auth_headers(t["manager"]),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "manager_approved"

    resp = await client.get(
        "/api/v1/leave/pending-approvals", headers=auth_headers(t["admin"]),
    )
    assert [r["id"] for r in resp.json()] == [rid]

    resp = await client.put(
        f"/api/v1/leave/{rid}/approve/admin", json={}, headers=auth_headers(t["admin"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "admin_approved"

    resp = await client.get(
        f"/api/v1/leave/summary?year={NEXT_YEAR}", headers=auth_headers(t["employee"]),
    )
    summary = resp.json()
    assert summary["used_days"] == 3
    assert summary["pending_days"] == 0
    assert summary["remaining_days"] == 21


async def test_terminal_request_returns_invalid_state(client, db):
    t = await _seed(db)
    req = await _submit(client, t)

    resp = await client.put(
        f"/api/v1/leave/{req['id']}/cancel",
        json={"reason": "Trip moved"},
        headers=auth_headers(t["employee"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = await client.put(
        f"/api/v1/leave/{req['id']}/approve/manager",
        json={},
        headers=auth_headers(t["manager"]),
    )
    body = _assert_problem(resp, 400, "invalid-state")
    assert "already cancelled" in body["detail"]


async def test_unrelated_user_forbidden(client, db):
    t = await _seed(db)
    outsider = await seed_user(db, role=UserRole.manager)
    await db.commit()
    req = await _submit(client, t)

    resp = await client.put(
        f"/api/v1/leave/{req['id']}/approve/manager",
        json={},
        headers=auth_headers(outsider),
    )
    _assert_problem(resp, 403, "forbidden")

    resp = await client.get(f"/api/v1/leave/{req['id']}", headers=auth_headers(outsider))
    _assert_problem(resp, 403, "forbidden")


async def test_unknown_request_not_found(client, db):
    t = await _seed(db)

    resp = await client.get(f"/api/v1/leave/{uuid.uuid4()}", headers=auth_headers(t["admin"]))
    _assert_problem(resp, 404, "not-found")

    resp = await client.put(
        f"/api/v1/leave/{uuid.uuid4()}/reject/manager",
        json={},
        headers=auth_headers(t["manager"]),
    )
    _assert_problem(resp, 404, "not-found")


async def test_list_is_scoped_to_caller(client, db):
    t = await _seed(db)
    await _submit(client, t)

    resp = await client.get("/api/v1/leave", headers=auth_headers(t["manager"]))
    assert resp.json()["meta"]["total"] == 1

    other = await seed_user(db)
    await db.commit()
    resp = await client.get("/api/v1/leave", headers=auth_headers(other))
    assert resp.json()["meta"]["total"] == 0
    assert resp.json()["data"] == []


# ── Balances / catalog ──────────────────────────────────────────────


async def test_balances_are_provisioned_on_first_read(client, db):
    t = await _seed(db, balances=False)

    resp = await client.get(
        f"/api/v1/leave/balances?year={NEXT_YEAR}", headers=auth_headers(t["employee"]),
    )

    assert resp.status_code == 200
    rows = resp.json()
    assert len(rows) == 2
    assert {r["remaining_days"] for r in rows} == {12}


async def test_leave_types(client, db):
    t = await _seed(db)

    resp = await client.get("/api/v1/leave/types", headers=auth_headers(t["employee"]))

    assert [lt["name"] for lt in resp.json()] == ["Casual Leave", "Health Leave"]


async def test_provision_requires_admin(client, db):
    t = await _seed(db, balances=False)
    payload = {"user_id": str(t["employee"].id), "year": NEXT_YEAR}

    resp = await client.post(
        "/api/v1/leave/balances/provision", json=payload, headers=auth_headers(t["manager"]),
    )
    _assert_problem(resp, 403, "forbidden")

    resp = await client.post(
        "/api/v1/leave/balances/provision", json=payload, headers=auth_headers(t["admin"]),
    )
    assert resp.status_code == 200
    assert len(resp.json()) == 2


async def test_statistics_admin_only(client, db):
    t = await _seed(db)
    await _submit(client, t)

    resp = await client.get("/api/v1/leave/statistics", headers=auth_headers(t["employee"]))
    _assert_problem(resp, 403, "forbidden")

    resp = await client.get(
        f"/api/v1/leave/statistics?year={NEXT_YEAR}", headers=auth_headers(t["admin"]),
    )
    assert resp.status_code == 200
    assert resp.json()["total_requests"] == 1
    assert resp.json()["pending_requests"] == 1


# ── Notifications ───────────────────────────────────────────────────


async def test_manager_is_notified_of_submission(client, db):
    t = await _seed(db)
    await _submit(client, t)

    resp = await client.get(
        "/api/v1/notifications/unread-count", headers=auth_headers(t["manager"]),
    )
    assert resp.json()["data"]["count"] == 1

    resp = await client.get("/api/v1/notifications", headers=auth_headers(t["manager"]))
    body = resp.json()
    assert body["meta"]["unread"] == 1
    notif = body["data"][0]
    assert notif["type"] == "request_submitted"

    resp = await client.put(
        f"/api/v1/notifications/{notif['id']}/read", headers=auth_headers(t["manager"]),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["is_read"] is True

    resp = await client.put(
        f"/api/v1/notifications/{notif['id']}/read", headers=auth_headers(t["employee"]),
    )
    _assert_problem(resp, 403, "forbidden")


async def test_notification_stats(client, db):
    t = await _seed(db)
    await _submit(client, t)

    resp = await client.get("/api/v1/notifications/stats", headers=auth_headers(t["manager"]))

    stats = resp.json()["data"]
    assert stats["total"] == 1
    assert stats["by_type"] == {"request_submitted": 1}


# ── Users ───────────────────────────────────────────────────────────


async def test_me(client, db):
    t = await _seed(db)

    resp = await client.get("/api/v1/users/me", headers=auth_headers(t["employee"]))

    assert resp.status_code == 200
    assert resp.json()["id"] == str(t["employee"].id)
    assert resp.json()["role"] == "employee"
    assert resp.json()["manager_id"] == str(t["manager"].id)


async def test_team(client, db):
    t = await _seed(db)

    resp = await client.get("/api/v1/users/team", headers=auth_headers(t["manager"]))
    assert [u["id"] for u in resp.json()] == [str(t["employee"].id)]

    resp = await client.get("/api/v1/users/team", headers=auth_headers(t["employee"]))
    _assert_problem(resp, 403, "forbidden")


async def test_admin_creates_user(client, db):
    t = await _seed(db, balances=False)
    payload = {
        "email": "New.Hire@LeaveFlow.dev",
        "first_name": "New",
        "last_name": "Hire",
        "manager_id": str(t["manager"].id),
    }

    resp = await client.post("/api/v1/users", json=payload, headers=auth_headers(t["admin"]))
    assert resp.status_code == 201, resp.text
    assert resp.json()["email"] == "new.hire@leaveflow.dev"

    resp = await client.post("/api/v1/users", json=payload, headers=auth_headers(t["admin"]))
    _assert_problem(resp, 409, "conflict")


async def test_employee_cannot_create_user(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/users",
        json={"email": "x@leaveflow.dev", "first_name": "X", "last_name": "Y"},
        headers=auth_headers(t["employee"]),
    )
    _assert_problem(resp, 403, "forbidden")


async def test_create_user_with_employee_as_manager(client, db):
    t = await _seed(db)

    resp = await client.post(
        "/api/v1/users",
        json={
            "email": "z@leaveflow.dev",
            "first_name": "Z",
            "last_name": "Z",
            "manager_id": str(t["employee"].id),
        },
        headers=auth_headers(t["admin"]),
    )
    body = _assert_problem(resp, 400, "validation-error")
    assert "manager_id" in body["errors"]


# ── Sorting ─────────────────────────────────────────────────────────


async def test_sort_on_non_column_attribute_is_ignored(client, db):
    t = await _seed(db)
    await _submit(client, t)

    for sort in ("year", "-year", "user", "leave_type", "metadata", "no_such_field"):
        resp = await client.get(
            f"/api/v1/leave?sort={sort}", headers=auth_headers(t["employee"]),
        )
        assert resp.status_code == 200, f"{sort}: {resp.text}"
        assert resp.json()["meta"]["total"] == 1


async def test_sort_by_column(client, db):
    t = await _seed(db)
    await _submit(client, t, days=1)
    resp = await client.post(
        "/api/v1/leave",
        json=_body(t["health"], next_year_date(6, 1), next_year_date(6, 1)),
        headers=auth_headers(t["employee"]),
    )
    assert resp.status_code == 201, resp.text

    resp = await client.get(
        "/api/v1/leave?sort=-start_date", headers=auth_headers(t["employee"]),
    )
    starts = [r["start_date"] for r in resp.json()["data"]]
    assert starts == [next_year_date(6, 1).isoformat(), next_year_date(3, 2).isoformat()]

    resp = await client.get(
        "/api/v1/leave?sort=start_date", headers=auth_headers(t["employee"]),
    )
    starts = [r["start_date"] for r in resp.json()["data"]]
    assert starts == [next_year_date(3, 2).isoformat(), next_year_date(6, 1).isoformat()]


def test_default_year_follows_the_utc_clock(monkeypatch):
    from leaveflow.leave import router as leave_router

    class _FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2031, 12, 31, 23, 30, tzinfo=timezone.utc)

    monkeypatch.setattr(leave_router, "datetime", _FrozenDatetime)

    assert leave_router._year_or_current(None) == 2031
    assert leave_router._year_or_current(2029) == 2029


# ── Monthly caps ────────────────────────────────────────────────────


async def test_monthly_cap_over_http(client, db):
    await seed_user(db, role=UserRole.admin)
    employee = await seed_user(db)
    types = await seed_leave_types(db, monthly_limits=True)
    for lt in types.values():
        await seed_balance(db, employee, lt)
    await db.commit()
    health = types[LeaveCategory.health]

    resp = await client.post(
        "/api/v1/leave",
        json=_body(health, next_year_date(3, 2), next_year_date(3, 2)),
        headers=auth_headers(employee),
    )
    assert resp.status_code == 201, resp.text

    resp = await client.post(
        "/api/v1/leave",
        json=_body(health, next_year_date(3, 16), next_year_date(3, 16)),
        headers=auth_headers(employee),
    )
    body = _assert_problem(resp, 400, "monthly-limit-exceeded")
    assert "dates" in body["errors"]

    resp = await client.get(
        f"/api/v1/leave/monthly-usage?year={NEXT_YEAR}&month=3",
        headers=auth_headers(employee),
    )
    assert resp.status_code == 200
    usage = {u["leave_type"]["name"]: u for u in resp.json()}
    assert usage["Health Leave"]["used_days"] == 1
    assert usage["Health Leave"]["remaining_days"] == 0
    assert usage["Casual Leave"]["used_days"] == 0


async def test_monthly_usage_rejects_bad_month(client, db):
    t = await _seed(db)

    resp = await client.get(
        "/api/v1/leave/monthly-usage?month=13", headers=auth_headers(t["employee"]),
    )
    _assert_problem(resp, 400, "validation-error")


# ── Notification archive ────────────────────────────────────────────


async def test_archive_notification_over_http(client, db):
    t = await _seed(db)
    await _submit(client, t)
    resp = await client.get("/api/v1/notifications", headers=auth_headers(t["manager"]))
    notif_id = resp.json()["data"][0]["id"]

    resp = await client.put(
        f"/api/v1/notifications/{notif_id}/archive", headers=auth_headers(t["employee"]),
    )
    _assert_problem(resp, 403, "forbidden")

    resp = await client.put(
        f"/api/v1/notifications/{notif_id}/archive", headers=auth_headers(t["manager"]),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["is_archived"] is True
    assert resp.json()["data"]["is_read"] is True

    resp = await client.get("/api/v1/notifications", headers=auth_headers(t["manager"]))
    assert resp.json()["meta"]["total"] == 0
    assert resp.json()["meta"]["unread"] == 0

    resp = await client.get(
        "/api/v1/notifications?archived=true", headers=auth_headers(t["manager"]),
    )
    assert [n["id"] for n in resp.json()["data"]] == [notif_id]


# ── User administration ─────────────────────────────────────────────


async def test_user_directory_is_scoped_to_caller(client, db):
    t = await _seed(db)

    resp = await client.get("/api/v1/users", headers=auth_headers(t["admin"]))
    assert resp.status_code == 200
    assert resp.json()["meta"]["total"] == 3

    resp = await client.get("/api/v1/users", headers=auth_headers(t["manager"]))
    assert {u["id"] for u in resp.json()["data"]} == {
        str(t["manager"].id), str(t["employee"].id),
    }

    resp = await client.get("/api/v1/users", headers=auth_headers(t["employee"]))
    assert [u["id"] for u in resp.json()["data"]] == [str(t["employee"].id)]


async def test_user_directory_filters_and_search(client, db):
    t = await _seed(db)

    resp = await client.get("/api/v1/users?search=eve", headers=auth_headers(t["admin"]))
    assert [u["id"] for u in resp.json()["data"]] == [str(t["employee"].id)]

    resp = await client.get("/api/v1/users?role=manager", headers=auth_headers(t["admin"]))
    assert [u["id"] for u in resp.json()["data"]] == [str(t["manager"].id)]

    resp = await client.get(
        "/api/v1/users?sort=-email&page_size=2", headers=auth_headers(t["admin"]),
    )
    assert resp.status_code == 200
    assert resp.json()["meta"]["has_next"] is True


async def test_get_user_visibility(client, db):
    t = await _seed(db)
    url = f"/api/v1/users/{t['employee'].id}"

    for viewer in ("employee", "manager", "admin"):
        resp = await client.get(url, headers=auth_headers(t[viewer]))
        assert resp.status_code == 200, viewer

    other = await seed_user(db)
    await db.commit()
    resp = await client.get(url, headers=auth_headers(other))
    _assert_problem(resp, 403, "forbidden")

    resp = await client.get(f"/api/v1/users/{uuid.uuid4()}", headers=auth_headers(t["admin"]))
    _assert_problem(resp, 404, "not-found")


async def test_update_own_profile(client, db):
    t = await _seed(db)

    resp = await client.put(
        f"/api/v1/users/{t['employee'].id}",
        json={"department": "Design"},
        headers=auth_headers(t["employee"]),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["department"] == "Design"

    resp = await client.put(
        f"/api/v1/users/{t['employee'].id}",
        json={"role": "admin"},
        headers=auth_headers(t["employee"]),
    )
    _assert_problem(resp, 403, "forbidden")


async def test_manager_cannot_edit_report(client, db):
    t = await _seed(db)

    resp = await client.put(
        f"/api/v1/users/{t['employee'].id}",
        json={"first_name": "Evelyn"},
        headers=auth_headers(t["manager"]),
    )
    _assert_problem(resp, 403, "forbidden")


async def test_admin_changes_role_and_manager(client, db):
    t = await _seed(db)
    lead = await seed_user(db, role=UserRole.manager)
    await db.commit()

    resp = await client.put(
        f"/api/v1/users/{t['employee'].id}",
        json={"role": "manager", "manager_id": str(lead.id)},
        headers=auth_headers(t["admin"]),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["role"] == "manager"
    assert resp.json()["manager_id"] == str(lead.id)

    resp = await client.put(
        f"/api/v1/users/{t['employee'].id}",
        json={"manager_id": str(t["employee"].id)},
        headers=auth_headers(t["admin"]),
    )
    _assert_problem(resp, 400, "validation-error")


async def test_demoting_manager_with_reports_refused(client, db):
    t = await _seed(db)

    resp = await client.put(
        f"/api/v1/users/{t['manager'].id}",
        json={"role": "employee"},
        headers=auth_headers(t["admin"]),
    )
    _assert_problem(resp, 400, "validation-error")


async def test_toggle_status(client, db):
    t = await _seed(db)
    url = f"/api/v1/users/{t['employee'].id}/toggle-status"

    resp = await client.put(url, json={"is_active": False}, headers=auth_headers(t["manager"]))
    _assert_problem(resp, 403, "forbidden")

    resp = await client.put(url, json={"is_active": False}, headers=auth_headers(t["admin"]))
    assert resp.status_code == 200, resp.text
    assert resp.json()["is_active"] is False

    # A deactivated account can no longer authenticate
    resp = await client.get("/api/v1/users/me", headers=auth_headers(t["employee"]))
    assert resp.status_code == 401

    resp = await client.put(url, json={"is_active": True}, headers=auth_headers(t["admin"]))
    assert resp.json()["is_active"] is True


async def test_admin_cannot_deactivate_self(client, db):
    t = await _seed(db)

    resp = await client.put(
        f"/api/v1/users/{t['admin'].id}/toggle-status",
        json={"is_active": False},
        headers=auth_headers(t["admin"]),
    )
    _assert_problem(resp, 400, "validation-error")


async def test_user_stats_over_http(client, db):
    t = await _seed(db)
    await _submit(client, t)

    resp = await client.get(
        f"/api/v1/users/{t['employee'].id}/stats?year={NEXT_YEAR}",
        headers=auth_headers(t["manager"]),
    )
    assert resp.status_code == 200, resp.text
    stats = resp.json()
    assert stats["total_requests"] == 1
    assert stats["total_days_requested"] == 3
    assert stats["by_month"] == [{"month": 3, "requests_count": 1, "total_days": 3}]

    other = await seed_user(db)
    await db.commit()
    resp = await client.get(
        f"/api/v1/users/{t['employee'].id}/stats", headers=auth_headers(other),
    )
    _assert_problem(resp, 403, "forbidden")
