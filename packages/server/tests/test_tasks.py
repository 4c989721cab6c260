"""
Integration tests for the group-scoped task endpoints.

Tests cover:
- Authentication and membership checks
- Leader-only task CRUD and assignee replacement
- Submission endpoint status codes (200 / 207 / 403 / 422 / 404)
- Status changes, permissions and ledger reads
- Task and group deletion with their audit entries
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.api.v1.deps import get_deletion_orchestrator, get_submission_service
from app.main import app
from app.models.activity_log import ActivityLog
from app.models.group import Group
from app.models.group_member import GroupMember
from app.models.submission_history import SubmissionHistory
from app.models.task import Task
from app.services.deletion import DeletionOrchestrator
from app.services.submissions import SubmissionService
from studygroup_shared.schemas.common import GroupRole

from conftest import activity_rows, auth_headers, count_rows

LINK = {"title": "Báo cáo", "url": "https://drive.example/report"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
async def team(seed):
    """A group with a leader, an assignee and a bystander member."""
    leader = await seed.user("Trưởng Nhóm")
    student = await seed.user("Sinh Viên")
    bystander = await seed.user("Thành Viên")
    group = await seed.group(leader_id=leader)
    await seed.member(group.id, student)
    await seed.member(group.id, bystander)
    return {"group": group, "leader": leader, "student": student, "bystander": bystander}


def _tasks_url(group_id, *parts) -> str:
    return "/".join([f"/api/v1/groups/{group_id}/tasks", *map(str, parts)])


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_requires_bearer_token(client: AsyncClient, team):
    response = await client.get(_tasks_url(team["group"].id) + "/")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient, team):
    response = await client.get(
        _tasks_url(team["group"].id) + "/", headers={"Authorization": "Bearer nope"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired session"


@pytest.mark.asyncio
async def test_non_member_sees_group_as_missing(client: AsyncClient, team):
    response = await client.get(
        _tasks_url(team["group"].id) + "/", headers=auth_headers(uuid.uuid4())
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_global_admin_may_enter_any_group(client: AsyncClient, seed, team):
    admin = await seed.user(global_admin=True)
    response = await client.get(_tasks_url(team["group"].id) + "/", headers=auth_headers(admin))
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_leader_creates_task(client: AsyncClient, team):
    response = await client.post(
        _tasks_url(team["group"].id) + "/",
        json={
            "title": "Chương 2",
            "deadline": (_now() + timedelta(days=2)).isoformat(),
            "assignee_ids": [str(team["student"]), str(team["student"])],
        },
        headers=auth_headers(team["leader"]),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "TODO"
    assert data["submission_links"] == []
    assert data["assignee_ids"] == [str(team["student"])]
    assert data["created_by"] == str(team["leader"])


@pytest.mark.asyncio
async def test_member_cannot_create_task(client: AsyncClient, team):
    response = await client.post(
        _tasks_url(team["group"].id) + "/",
        json={"title": "X"},
        headers=auth_headers(team["student"]),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_rejects_blank_title(client: AsyncClient, team):
    response = await client.post(
        _tasks_url(team["group"].id) + "/",
        json={"title": ""},
        headers=auth_headers(team["leader"]),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_and_filter(client: AsyncClient, seed, team):
    gid = team["group"].id
    mine = await seed.task(gid, title="Của tôi", assignees=[team["student"]])
    await seed.task(gid, title="Khác")

    everything = await client.get(_tasks_url(gid) + "/", headers=auth_headers(team["student"]))
    filtered = await client.get(
        _tasks_url(gid) + "/",
        params={"assignee_id": str(team["student"])},
        headers=auth_headers(team["student"]),
    )

    assert len(everything.json()) == 2
    assert [t["id"] for t in filtered.json()] == [str(mine.id)]


@pytest.mark.asyncio
async def test_get_task_decodes_legacy_links(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, submission_links="https://drive.example/old")

    response = await client.get(
        _tasks_url(team["group"].id, task.id), headers=auth_headers(team["bystander"])
    )

    assert response.status_code == 200
    assert response.json()["submission_links"] == [
        {"title": "Bài nộp", "url": "https://drive.example/old"}
    ]


@pytest.mark.asyncio
async def test_get_missing_task_uses_error_envelope(client: AsyncClient, team):
    response = await client.get(
        _tasks_url(team["group"].id, uuid.uuid4()), headers=auth_headers(team["student"])
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_update_metadata_only(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id)

    response = await client.patch(
        _tasks_url(team["group"].id, task.id),
        json={"title": "Tên mới", "description": "chi tiết"},
        headers=auth_headers(team["leader"]),
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Tên mới"
    assert response.json()["status"] == "TODO"


@pytest.mark.asyncio
async def test_replace_assignees(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])

    response = await client.put(
        _tasks_url(team["group"].id, task.id, "assignees"),
        json={"assignee_ids": [str(team["bystander"])]},
        headers=auth_headers(team["leader"]),
    )

    assert response.status_code == 200
    assert response.json()["assignee_ids"] == [str(team["bystander"])]


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_assignee_submission_accepted(client: AsyncClient, seed, session_factory, team):
    task = await seed.task(
        team["group"].id, deadline=_now() + timedelta(days=1), assignees=[team["student"]]
    )

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "submissions"),
        json={"links": [LINK], "status": "DONE"},
        headers=auth_headers(team["student"]),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert response.json()["label"] == "normal"

    history = await client.get(
        _tasks_url(team["group"].id, task.id, "submissions"), headers=auth_headers(team["leader"])
    )
    assert history.status_code == 200
    [entry] = history.json()
    assert entry["user_name"] == "Sinh Viên"
    assert entry["submission_links"] == [LINK]


@pytest.mark.asyncio
async def test_overdue_assignee_gets_403(client: AsyncClient, seed, session_factory, team):
    task = await seed.task(
        team["group"].id, deadline=_now() - timedelta(hours=2), assignees=[team["student"]]
    )

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "submissions"),
        json={"links": [LINK]},
        headers=auth_headers(team["student"]),
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "NOT_AUTHORIZED"
    assert await count_rows(session_factory, SubmissionHistory) == 0


@pytest.mark.asyncio
async def test_empty_links_get_422(client: AsyncClient, seed, session_factory, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "submissions"),
        json={"links": [{"title": "", "url": ""}]},
        headers=auth_headers(team["student"]),
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "EMPTY_PAYLOAD"
    assert await count_rows(session_factory, ActivityLog) == 0


@pytest.mark.asyncio
async def test_leader_on_behalf_submission(client: AsyncClient, seed, session_factory, team):
    task = await seed.task(
        team["group"].id, deadline=_now() - timedelta(hours=2), assignees=[team["student"]]
    )

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "submissions"),
        json={"links": [LINK]},
        headers=auth_headers(team["leader"]),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["label"] == "on_behalf"
    assert body["late_hours"] == 2

    [log_entry] = await activity_rows(session_factory, ActivityLog.group_id == team["group"].id)
    assert log_entry.action == "LATE_SUBMISSION"
    assert log_entry.user_name == "Trưởng Nhóm"


@pytest.mark.asyncio
async def test_partial_submission_returns_207(client: AsyncClient, seed, session_factory, team):
    class FailingAudit(SubmissionService):
        async def _append_activity(self, session, entry):
            raise OperationalError("INSERT", {}, Exception("disk full"))

    app.dependency_overrides[get_submission_service] = lambda: FailingAudit(session_factory)
    task = await seed.task(team["group"].id, assignees=[team["student"]])

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "submissions"),
        json={"links": [LINK]},
        headers=auth_headers(team["student"]),
    )

    assert response.status_code == 207
    body = response.json()
    assert body["status"] == "partial"
    assert body["writes"] == {"task": True, "history": True, "activity": False}
    assert body["failures"][0]["write"] == "activity"


@pytest.mark.asyncio
async def test_permissions_endpoint(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])

    response = await client.get(
        _tasks_url(team["group"].id, task.id, "permissions"), headers=auth_headers(team["student"])
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_assignee"] is True
    assert body["can_submit"] is True
    assert body["can_verify"] is False


@pytest.mark.asyncio
async def test_status_change_and_verify(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])
    url = _tasks_url(team["group"].id, task.id, "status")

    done = await client.post(url, json={"status": "DONE"}, headers=auth_headers(team["student"]))
    denied = await client.post(
        url, json={"status": "VERIFIED"}, headers=auth_headers(team["student"])
    )
    verified = await client.post(
        url, json={"status": "VERIFIED"}, headers=auth_headers(team["leader"])
    )

    assert done.status_code == 200
    assert denied.status_code == 403
    assert verified.status_code == 200

    task_view = await client.get(
        _tasks_url(team["group"].id, task.id), headers=auth_headers(team["student"])
    )
    assert task_view.json()["status"] == "VERIFIED"


@pytest.mark.asyncio
async def test_bystander_cannot_change_status(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])

    response = await client.post(
        _tasks_url(team["group"].id, task.id, "status"),
        json={"status": "IN_PROGRESS"},
        headers=auth_headers(team["bystander"]),
    )
    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_task_is_idempotent_and_audited(
    client: AsyncClient, seed, session_factory, team
):
    task = await seed.task(team["group"].id, title="Xoá tôi", assignees=[team["student"]])
    url = _tasks_url(team["group"].id, task.id)

    first = await client.delete(url, headers=auth_headers(team["leader"]))
    second = await client.delete(url, headers=auth_headers(team["leader"]))

    assert first.status_code == 200
    assert first.json()["deleted"] is True
    assert second.status_code == 200
    assert await count_rows(session_factory, Task, Task.id == task.id) == 0

    entries = await activity_rows(session_factory, ActivityLog.action == "DELETE_TASK")
    assert len(entries) == 1
    assert entries[0].meta["task_title"] == "Xoá tôi"


@pytest.mark.asyncio
async def test_member_cannot_delete_task(client: AsyncClient, seed, team):
    task = await seed.task(team["group"].id, assignees=[team["student"]])
    response = await client.delete(
        _tasks_url(team["group"].id, task.id), headers=auth_headers(team["student"])
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_failed_deletion_returns_500_naming_step(
    client: AsyncClient, seed, session_factory, team
):
    class FailingHistoryStep(DeletionOrchestrator):
        async def _run_step(self, step):
            if step.name == "submission_history":
                raise OperationalError("DELETE", {}, Exception("timeout"))
            return await super()._run_step(step)

    app.dependency_overrides[get_deletion_orchestrator] = lambda: FailingHistoryStep(
        session_factory
    )
    task = await seed.task(team["group"].id)

    response = await client.delete(
        _tasks_url(team["group"].id, task.id), headers=auth_headers(team["leader"])
    )

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "PARTIAL_DELETION_FAILURE"
    assert error["detail"]["step"] == "submission_history"
    assert error["detail"]["completed"] == ["task_assignments", "task_scores"]
    assert await count_rows(session_factory, Task, Task.id == task.id) == 1


@pytest.mark.asyncio
async def test_delete_group(client: AsyncClient, seed, session_factory, team):
    gid = team["group"].id
    await seed.task(gid, assignees=[team["student"]])

    response = await client.delete(f"/api/v1/groups/{gid}", headers=auth_headers(team["leader"]))

    assert response.status_code == 200
    assert response.json()["target"] == "group"
    assert await count_rows(session_factory, Group, Group.id == gid) == 0
    assert await count_rows(session_factory, Task, Task.group_id == gid) == 0

    [entry] = await activity_rows(session_factory, ActivityLog.action == "DELETE_GROUP")
    assert entry.group_id is None
    assert entry.meta["group_id"] == str(gid)


class FailingGroupStep(DeletionOrchestrator):
    def __init__(self, session_factory, fail_at: str):
        super().__init__(session_factory)
        self.fail_at = fail_at

    async def _run_step(self, step):
        if step.name == self.fail_at:
            raise OperationalError("DELETE", {}, Exception("timeout"))
        return await super()._run_step(step)


@pytest.mark.asyncio
@pytest.mark.parametrize("fail_at", ["activity_logs", "group"])
async def test_leader_can_retry_group_deletion_after_members_are_gone(
    client: AsyncClient, seed, session_factory, team, fail_at
):
    gid = team["group"].id
    url = f"/api/v1/groups/{gid}"
    app.dependency_overrides[get_deletion_orchestrator] = lambda: FailingGroupStep(
        session_factory, fail_at
    )

    first = await client.delete(url, headers=auth_headers(team["leader"]))

    assert first.status_code == 500
    error = first.json()["error"]
    assert error["detail"]["step"] == fail_at
    assert "group_members" in error["detail"]["completed"]
    assert "timeout" not in error["message"]
    assert "SQL" not in error["message"]
    assert await count_rows(session_factory, GroupMember, GroupMember.group_id == gid) == 0

    del app.dependency_overrides[get_deletion_orchestrator]
    retry = await client.delete(url, headers=auth_headers(team["leader"]))

    assert retry.status_code == 200
    assert retry.json()["deleted"] is True
    assert await count_rows(session_factory, Group, Group.id == gid) == 0


@pytest.mark.asyncio
async def test_memberless_group_is_hidden_from_other_users(
    client: AsyncClient, seed, session_factory, team
):
    gid = team["group"].id
    app.dependency_overrides[get_deletion_orchestrator] = lambda: FailingGroupStep(
        session_factory, "group"
    )
    await client.delete(f"/api/v1/groups/{gid}", headers=auth_headers(team["leader"]))
    del app.dependency_overrides[get_deletion_orchestrator]

    response = await client.delete(
        f"/api/v1/groups/{gid}", headers=auth_headers(team["student"])
    )

    assert response.status_code == 404
    assert await count_rows(session_factory, Group, Group.id == gid) == 1


@pytest.mark.asyncio
async def test_activity_feed(client: AsyncClient, seed, team):
    gid = team["group"].id
    task = await seed.task(gid, assignees=[team["student"]])
    await client.post(
        _tasks_url(gid, task.id, "submissions"),
        json={"links": [LINK]},
        headers=auth_headers(team["student"]),
    )
    await client.post(
        _tasks_url(gid, task.id, "status"),
        json={"status": "DONE"},
        headers=auth_headers(team["student"]),
    )

    feed = await client.get(f"/api/v1/groups/{gid}/activity", headers=auth_headers(team["bystander"]))
    only_submissions = await client.get(
        f"/api/v1/groups/{gid}/activity",
        params={"action": "SUBMISSION"},
        headers=auth_headers(team["bystander"]),
    )

    assert feed.status_code == 200
    assert {e["action"] for e in feed.json()} == {"SUBMISSION", "STATUS_CHANGE"}
    assert [e["action"] for e in only_submissions.json()] == ["SUBMISSION"]
    assert only_submissions.json()[0]["metadata"]["task_id"] == str(task.id)
