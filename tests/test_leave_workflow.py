import io
import os

import pytest
from datetime import timedelta
from fastapi import UploadFile
from fastapi.testclient import TestClient

from leave_engine.core.config import settings
from leave_engine.core.datetime_utils import utcnow
from leave_engine.core.exceptions import AlreadyProcessedError
from leave_engine.main import app
from leave_engine.models.leave_request import LeaveRequest, LeaveStatus
from leave_engine.routers.leave import _save_documents
from leave_engine.schemas.leave import AttachmentIn, LeaveRequestCreate
from leave_engine.services.auth import create_access_token
from leave_engine.services.leave_service import LeaveRequestService


def _submit(client, headers, today, leave_type="annual", offset=10, days=10, employee_id="EMP-1", **extra):
    start = today + timedelta(days=offset)
    end = start + timedelta(days=days - 1)
    body = {
        "employeeId": employee_id,
        "leaveType": leave_type,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "reason": "Family trip",
        "gradeLevel": 2,
    }
    body.update(extra)
    return client.post("/api/leave", headers=headers, json=body)


def _process(client, headers, request_id, action="approve", notes=None):
    body = {"action": action}
    if notes is not None:
        body["managerNotes"] = notes
    return client.patch(f"/api/leave/process/{request_id}", headers=headers, json=body)


@pytest.fixture
def employee(auth_headers):
    return auth_headers("EMPLOYEE", sub="user-emp-1", employee_id="EMP-1")


@pytest.fixture
def manager(auth_headers):
    return auth_headers("HR_MANAGER", sub="mgr-1")


def test_employee_submits_own_request(client, seeded_policies, employee, today):
    response = _submit(client, employee, today)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    leave = body["data"]["leaveRequest"]
    assert leave["status"] == "pending"
    assert leave["daysCount"] == 10
    assert leave["submittedBy"] == "user-emp-1"
    assert leave["isRetroactive"] is False


def test_employee_cannot_submit_for_someone_else(client, seeded_policies, employee, today):
    response = _submit(client, employee, today, employee_id="EMP-2")
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_request_without_token_is_unauthorized(client, seeded_policies, today):
    response = _submit(client, {}, today)
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_token_is_unauthorized(client, seeded_policies, today):
    response = _submit(client, {"Authorization": "Bearer not-a-token"}, today)
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["errors"] == [{"code": "HTTP_ERROR", "msg": "Could not validate credentials"}]


def test_expired_token_is_unauthorized(client, seeded_policies, today):
    token = create_access_token("user-emp-1", "EMPLOYEE", employee_id="EMP-1", expires_delta=timedelta(minutes=-5))
    response = _submit(client, {"Authorization": f"Bearer {token}"}, today)
    assert response.status_code == 401
    assert response.json()["errors"] == [{"code": "HTTP_ERROR", "msg": "TOKEN_EXPIRED"}]


def test_rule_violations_are_reported(client, seeded_policies, employee, today):
    response = _submit(client, employee, today, leave_type="study", offset=3, days=2)
    assert response.status_code == 400
    codes = {e["code"] for e in response.json()["errors"]}
    assert codes == {"InsufficientNoticeKind", "MissingDocumentationKind"}


def test_malformed_body_is_a_validation_error(client, seeded_policies, employee, today):
    response = _submit(client, employee, today, leave_type="gardening")
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "ValidationKind"


def test_approve_consumes_balance(client, seeded_policies, employee, manager, today):
    request_id = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]

    response = _process(client, manager, request_id)
    assert response.status_code == 200
    leave = response.json()["data"]["leaveRequest"]
    assert leave["status"] == "approved"
    assert leave["approvedBy"] == "mgr-1"
    assert leave["balanceDeduction"] == 10

    year = (today + timedelta(days=10)).year
    balances = client.get(f"/api/leave/balance/EMP-1?year={year}", headers=employee).json()["data"]["balances"]
    assert balances == [{
        "leaveType": "annual", "periodYear": year, "usedDays": 10.0, "totalDays": 14.0, "remainingDays": 4.0
    }]


def test_second_decision_conflicts(client, seeded_policies, employee, manager, today):
    request_id = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    assert _process(client, manager, request_id).status_code == 200

    response = _process(client, manager, request_id)
    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "AlreadyProcessedKind"

    response = _process(client, manager, request_id, action="reject", notes="Too late")
    assert response.status_code == 409


def test_stale_approval_loses_to_first_decision(db_session, seeded_policies, today):
    service = LeaveRequestService(db_session)
    draft = LeaveRequestCreate(
        employee_id="EMP-1", leave_type="annual", grade_level=2, reason="Trip",
        start_date=today + timedelta(days=10), end_date=today + timedelta(days=12),
    )
    leave = service.submit(draft)
    stale = db_session.get(LeaveRequest, leave.id)

    service.process(leave.id, "reject", "mgr-1", manager_notes="Coverage gap")
    with pytest.raises(AlreadyProcessedError) as exc_info:
        service.process(stale.id, "approve", "mgr-2")
    assert exc_info.value.status_code == 409
    assert db_session.get(LeaveRequest, leave.id).status == LeaveStatus.REJECTED.value


def test_reject_requires_notes(client, seeded_policies, employee, manager, today):
    request_id = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]

    response = _process(client, manager, request_id, action="reject")
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "MissingReasonKind"

    response = _process(client, manager, request_id, action="reject", notes="Peak season")
    assert response.status_code == 200
    leave = response.json()["data"]["leaveRequest"]
    assert leave["status"] == "rejected"
    assert leave["rejectionReason"] == "Peak season"
    assert leave["balanceDeduction"] == 0


def test_approval_over_balance_keeps_request_pending(client, seeded_policies, employee, manager, today):
    first = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    second = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    assert _process(client, manager, first).status_code == 200

    response = _process(client, manager, second)
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "BalanceExceededKind"

    leave = client.get(f"/api/leave/{second}", headers=manager).json()["data"]["leaveRequest"]
    assert leave["status"] == "pending"


def test_employee_cannot_approve(client, seeded_policies, employee, today):
    request_id = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    response = _process(client, employee, request_id)
    assert response.status_code == 403


def test_processing_unknown_request_is_not_found(client, seeded_policies, manager):
    response = _process(client, manager, 9999)
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "LeaveRequestNotFoundKind"


def test_policy_without_approval_is_auto_approved(client, seeded_policies, auth_headers, employee, today):
    admin = auth_headers("HR_ADMIN")
    client.put("/api/policies/religious", headers=admin, json={"requiresApproval": False})

    response = _submit(client, employee, today, leave_type="religious", days=2)
    assert response.status_code == 201
    leave = response.json()["data"]["leaveRequest"]
    assert leave["status"] == "auto-approved"
    assert response.json()["data"]["autoApproved"] is True
    assert leave["approvedAt"] is not None


def test_urgent_request_carries_deadline(client, seeded_policies, employee, manager, today):
    response = _submit(
        client, employee, today, leave_type="official-assignment", offset=0, days=1,
        attachments=[{"fileName": "memo.pdf", "fileUrl": "/files/memo.pdf"}],
    )
    assert response.status_code == 201
    leave = response.json()["data"]["leaveRequest"]
    assert leave["requiresUrgentApproval"] is True
    assert leave["urgentDeadline"] is not None
    assert leave["urgentDeadlinePassed"] is False
    assert leave["attachments"][0]["fileName"] == "memo.pdf"


def test_pending_list_puts_overdue_urgent_first(client, db_session, seeded_policies, employee, manager, today):
    _submit(client, employee, today)
    service = LeaveRequestService(db_session)
    service.submit(
        LeaveRequestCreate(
            employee_id="EMP-3", leave_type="official-assignment", reason="Field visit",
            start_date=today - timedelta(days=2), end_date=today - timedelta(days=2),
            attachments=[AttachmentIn(file_name="memo.pdf", file_url="/files/memo.pdf")],
        ),
        now=utcnow() - timedelta(hours=30),
    )

    response = client.get("/api/leave/pending", headers=manager)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["count"] == 2
    assert data["overdueUrgentCount"] == 1
    assert data["leaveRequests"][0]["leaveType"] == "official-assignment"
    assert data["leaveRequests"][0]["urgentDeadlinePassed"] is True
    assert data["leaveRequests"][0]["isRetroactive"] is True

    overdue = service.list_overdue_urgent()
    assert [leave.employee_id for leave in overdue] == ["EMP-3"]


def test_multipart_submission_stores_documents(client, seeded_policies, employee, today):
    start = today + timedelta(days=2)
    response = client.post(
        "/api/leave/submit",
        headers=employee,
        data={
            "employeeId": "EMP-1",
            "leaveType": "examination",
            "startDate": start.isoformat(),
            "endDate": start.isoformat(),
            "reason": "Hospital appointment",
        },
        files=[("documents", ("appointment.pdf", b"%PDF-1.4 test", "application/pdf"))],
    )
    assert response.status_code == 201
    attachments = response.json()["data"]["leaveRequest"]["attachments"]
    assert len(attachments) == 1
    assert attachments[0]["fileName"] == "appointment.pdf"


def test_multipart_submission_limits_document_count(client, seeded_policies, employee, today):
    start = today + timedelta(days=2)
    files = [("documents", (f"doc{i}.pdf", b"x", "application/pdf")) for i in range(6)]
    response = client.post(
        "/api/leave/submit",
        headers=employee,
        data={
            "employeeId": "EMP-1",
            "leaveType": "examination",
            "startDate": start.isoformat(),
            "endDate": start.isoformat(),
            "reason": "Hospital appointment",
        },
        files=files,
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "ValidationKind"


class _UnreadableFile(io.BytesIO):
    def read(self, *args):
        raise OSError("connection reset while reading upload")


def test_failed_upload_leaves_no_files_behind(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
    documents = [
        UploadFile(file=io.BytesIO(b"%PDF-1.4 first"), filename="first.pdf"),
        UploadFile(file=_UnreadableFile(), filename="second.pdf"),
    ]

    with pytest.raises(OSError):
        _save_documents(documents)
    assert os.listdir(tmp_path) == []


def test_unexpected_submit_failure_removes_uploads(client, seeded_policies, employee, today, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))

    def _broken_submit(self, draft, actor_id=None, now=None):
        raise RuntimeError("database went away")

    monkeypatch.setattr(LeaveRequestService, "submit", _broken_submit)
    start = today + timedelta(days=2)

    # a bare client so the 500 comes back as a response instead of being re-raised
    response = TestClient(app, raise_server_exceptions=False).post(
        "/api/leave/submit",
        headers=employee,
        data={
            "employeeId": "EMP-1",
            "leaveType": "examination",
            "startDate": start.isoformat(),
            "endDate": start.isoformat(),
            "reason": "Hospital appointment",
        },
        files=[("documents", ("appointment.pdf", b"%PDF-1.4 test", "application/pdf"))],
    )
    assert response.status_code == 500
    assert response.json()["errors"][0]["code"] == "INTERNAL_ERROR"
    assert os.listdir(tmp_path) == []


def test_validate_endpoint_previews_without_saving(client, db_session, seeded_policies, employee, today):
    start = today + timedelta(days=10)
    response = client.post("/api/leave/validate", headers=employee, json={
        "employeeId": "EMP-1",
        "leaveType": "casual",
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(days=5)).isoformat(),
        "reason": "Errands",
    })
    assert response.status_code == 200
    validation = response.json()["data"]
    assert validation["valid"] is False
    assert validation["requestedDays"] == 6
    assert [i["code"] for i in validation["issues"]] == ["RequestTooLongKind"]
    assert validation["policy"]["leaveType"] == "casual"
    assert db_session.query(LeaveRequest).count() == 0


def test_check_leave_reports_granted_leave(client, seeded_policies, employee, manager, today):
    request_id = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    on_day = (today + timedelta(days=12)).isoformat()

    before = client.get(f"/api/leave/check-leave?employeeId=EMP-1&date={on_day}", headers=manager)
    assert before.json()["data"]["onLeave"] is False

    _process(client, manager, request_id)
    after = client.get(f"/api/leave/check-leave?employeeId=EMP-1&date={on_day}", headers=manager)
    assert after.json()["data"]["onLeave"] is True
    assert after.json()["data"]["leaveRequest"]["id"] == request_id


def test_employee_history_and_statistics(client, seeded_policies, employee, manager, today):
    first = _submit(client, employee, today).json()["data"]["leaveRequest"]["id"]
    second = _submit(client, employee, today, leave_type="religious", offset=40, days=2).json()["data"]["leaveRequest"]["id"]
    _process(client, manager, first)
    _process(client, manager, second, action="reject", notes="Short staffed")

    history = client.get("/api/leave/employee/EMP-1", headers=employee).json()["data"]
    assert history["count"] == 2

    assert client.get("/api/leave/employee/EMP-2", headers=employee).status_code == 403
    assert client.get("/api/leave/statistics", headers=employee).status_code == 403

    stats = client.get("/api/leave/statistics", headers=manager).json()["data"]["statistics"]
    assert stats["totalRequests"] == 2
    assert stats["approvedRequests"] == 1
    assert stats["rejectedRequests"] == 1
    assert stats["pendingRequests"] == 0
    assert stats["approvedDays"] == 10
    assert {t["leaveType"] for t in stats["byLeaveType"]} == {"annual", "religious"}


def test_get_unknown_request_is_not_found(client, seeded_policies, manager):
    response = client.get("/api/leave/424242", headers=manager)
    assert response.status_code == 404
