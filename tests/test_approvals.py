"""
Tests for the approval workflow routes.

Covers the pending queue, decisions, delegation, escalation, statistics
and overdue reminders.
"""

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from claimflow.models import utcnow
from claimflow.models.approval import Approval
from claimflow.models.expense import Category, Expense
from claimflow.models.user import User


class TestPendingApprovals:
    """Test suite for the approver's queue."""

    def test_pending_for_approver(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.get("/approvals/pending", headers=auth_headers(editor_user))
        assert response.status_code == 200
        data = response.json()
        assert [a["id"] for a in data["approvals"]] == [pending_approval.id]
        assert data["approvals"][0]["expense"]["subject"] == "Flight"
        assert data["approvals"][0]["requestedBy"]["username"] == "employee"
        assert data["pagination"]["totalApprovals"] == 1

    def test_other_users_see_nothing(
        self, client: TestClient, admin_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.get("/approvals/pending", headers=auth_headers(admin_user))
        assert response.json()["approvals"] == []

    def test_filter_by_priority(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        high = client.get("/approvals/pending", params={"priority": "High"}, headers=auth_headers(editor_user))
        assert high.json()["approvals"] == []
        medium = client.get("/approvals/pending", params={"priority": "Medium"}, headers=auth_headers(editor_user))
        assert len(medium.json()["approvals"]) == 1

    def test_sort_by_priority(
        self, client: TestClient, db_session: Session, employee: User, editor_user: User,
        pending_approval: Approval, auth_headers
    ):
        urgent_expense = Expense(owner_id=employee.id, category_id=pending_approval.expense.category_id,
                                 subject="Visa", amount=90.0, status="Submitted")
        db_session.add(urgent_expense)
        db_session.flush()
        urgent = Approval(expense_id=urgent_expense.id, requested_by_id=employee.id, approver_id=editor_user.id,
                          priority="Urgent", due_date=utcnow() + timedelta(days=10))
        db_session.add(urgent)
        db_session.commit()

        response = client.get(
            "/approvals/pending", params={"sortBy": "priority", "sortOrder": "desc"}, headers=auth_headers(editor_user)
        )
        assert [a["priority"] for a in response.json()["approvals"]] == ["Urgent", "Medium"]


class TestGetApproval:
    """Test suite for reading one approval."""

    def test_approver_reads(self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers):
        response = client.get(f"/approvals/{pending_approval.id}", headers=auth_headers(editor_user))
        assert response.status_code == 200
        assert response.json()["approval"]["approver"]["id"] == editor_user.id

    def test_requester_forbidden(self, client: TestClient, employee: User, pending_approval: Approval, auth_headers):
        response = client.get(f"/approvals/{pending_approval.id}", headers=auth_headers(employee))
        assert response.status_code == 403

    def test_admin_reads(self, client: TestClient, admin_user: User, pending_approval: Approval, auth_headers):
        response = client.get(f"/approvals/{pending_approval.id}", headers=auth_headers(admin_user))
        assert response.status_code == 200

    def test_missing(self, client: TestClient, admin_user: User, auth_headers):
        response = client.get("/approvals/777", headers=auth_headers(admin_user))
        assert response.status_code == 404
        assert response.json()["message"] == "Approval not found."


class TestDecisions:
    """Test suite for approving and rejecting."""

    def test_travel_flight_approved(
        self, client: TestClient, db_session: Session, employee: User, editor_user: User,
        travel_category: Category, auth_headers
    ):
        created = client.post(
            "/expenses",
            json={"subject": "Flight", "amount": 450, "category": travel_category.id},
            headers=auth_headers(employee),
        )
        assert created.json()["expense"]["status"] == "Draft"
        expense_id = created.json()["expense"]["id"]

        submitted = client.post(
            f"/expenses/{expense_id}/submit", json={"approverId": editor_user.id}, headers=auth_headers(employee)
        )
        assert submitted.json()["expense"]["status"] == "Submitted"
        approval_id = submitted.json()["approval"]["id"]

        response = client.post(
            f"/approvals/{approval_id}/approve", json={"comments": "Looks fine"}, headers=auth_headers(editor_user)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Expense approved successfully!"
        assert data["approval"]["status"] == "Approved"
        assert data["approval"]["comments"] == "Looks fine"
        assert data["approval"]["reviewedBy"]["id"] == editor_user.id
        assert data["approval"]["reviewedAt"] is not None
        assert data["expense"]["status"] == "Approved"
        assert data["expense"]["approvedBy"]["id"] == editor_user.id
        assert data["expense"]["approvedAt"] is not None

    def test_approve_without_body(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(f"/approvals/{pending_approval.id}/approve", headers=auth_headers(editor_user))
        assert response.status_code == 200
        assert response.json()["approval"]["comments"] is None

    def test_approval_is_terminal(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        headers = auth_headers(editor_user)
        client.post(f"/approvals/{pending_approval.id}/approve", headers=headers)

        again = client.post(f"/approvals/{pending_approval.id}/approve", headers=headers)
        assert again.status_code == 400
        assert again.json() == {"message": "Approval has already been processed.", "code": "INVALID_STATE"}

        reject = client.post(f"/approvals/{pending_approval.id}/reject", json={"comments": "No"}, headers=headers)
        assert reject.status_code == 400

    def test_reject_records_reason(
        self, client: TestClient, db_session: Session, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/reject",
            json={"comments": "Missing receipt"},
            headers=auth_headers(editor_user),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["approval"]["status"] == "Rejected"
        assert data["expense"]["status"] == "Rejected"
        assert data["expense"]["rejectionReason"] == "Missing receipt"
        assert data["expense"]["approvedBy"] is None

    def test_reject_with_blank_comments_changes_nothing(
        self, client: TestClient, db_session: Session, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/reject", json={"comments": "   "}, headers=auth_headers(editor_user)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Rejection reason is required."

        db_session.refresh(pending_approval)
        assert pending_approval.status == "Pending"
        db_session.refresh(pending_approval.expense)
        assert pending_approval.expense.status == "Submitted"

    def test_non_approver_forbidden(
        self, client: TestClient, other_employee: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(f"/approvals/{pending_approval.id}/approve", headers=auth_headers(other_employee))
        assert response.status_code == 403

    def test_admin_decides_for_approver(
        self, client: TestClient, admin_user: User, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(f"/approvals/{pending_approval.id}/approve", headers=auth_headers(admin_user))
        assert response.status_code == 200
        data = response.json()
        assert data["approval"]["reviewedBy"]["id"] == editor_user.id
        assert data["expense"]["approvedBy"]["id"] == admin_user.id


class TestDelegation:
    """Test suite for delegating an approval."""

    def test_delegate_records_delegate(
        self, client: TestClient, editor_user: User, admin_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/delegate",
            json={"delegateTo": admin_user.id, "reason": "On leave"},
            headers=auth_headers(editor_user),
        )
        assert response.status_code == 200
        approval = response.json()["approval"]
        assert approval["delegatedTo"]["id"] == admin_user.id
        assert approval["delegationReason"] == "On leave"
        assert approval["approver"]["id"] == editor_user.id
        assert approval["status"] == "Pending"

    def test_delegate_requires_user_and_reason(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        headers = auth_headers(editor_user)
        missing_user = client.post(
            f"/approvals/{pending_approval.id}/delegate", json={"reason": "On leave"}, headers=headers
        )
        assert missing_user.json()["message"] == "Delegate user ID is required."

        missing_reason = client.post(
            f"/approvals/{pending_approval.id}/delegate", json={"delegateTo": 1, "reason": " "}, headers=headers
        )
        assert missing_reason.json()["message"] == "Delegation reason is required."

    def test_delegate_unknown_user(self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers):
        response = client.post(
            f"/approvals/{pending_approval.id}/delegate",
            json={"delegateTo": 9999, "reason": "On leave"},
            headers=auth_headers(editor_user),
        )
        assert response.status_code == 404

    def test_delegate_to_current_approver(
        self, client: TestClient, editor_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/delegate",
            json={"delegateTo": editor_user.id, "reason": "Loop"},
            headers=auth_headers(editor_user),
        )
        assert response.status_code == 400

    def test_cannot_delegate_processed(
        self, client: TestClient, editor_user: User, admin_user: User, pending_approval: Approval, auth_headers
    ):
        headers = auth_headers(editor_user)
        client.post(f"/approvals/{pending_approval.id}/approve", headers=headers)
        response = client.post(
            f"/approvals/{pending_approval.id}/delegate",
            json={"delegateTo": admin_user.id, "reason": "Too late"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delegate processed approval."


class TestEscalation:
    """Test suite for escalating an approval."""

    def test_requester_escalates(
        self, client: TestClient, employee: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/escalate",
            json={"reason": "Waiting too long"},
            headers=auth_headers(employee),
        )
        assert response.status_code == 200
        approval = response.json()["approval"]
        assert approval["escalatedBy"]["id"] == employee.id
        assert approval["escalationReason"] == "Waiting too long"
        assert approval["escalatedAt"] is not None

    def test_escalation_requires_reason(
        self, client: TestClient, employee: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/escalate", json={}, headers=auth_headers(employee)
        )
        assert response.status_code == 400

    def test_unrelated_user_forbidden(
        self, client: TestClient, other_employee: User, pending_approval: Approval, auth_headers
    ):
        response = client.post(
            f"/approvals/{pending_approval.id}/escalate", json={"reason": "Hurry"}, headers=auth_headers(other_employee)
        )
        assert response.status_code == 403


class TestApprovalStats:
    """Test suite for approval statistics."""

    def test_stats_for_approver(
        self, client: TestClient, editor_user: User, overdue_approval: Approval, auth_headers
    ):
        response = client.get("/approvals/stats", headers=auth_headers(editor_user))
        assert response.status_code == 200
        assert response.json() == {
            "totalApprovals": 1,
            "pendingCount": 1,
            "approvedCount": 0,
            "rejectedCount": 0,
            "overdueCount": 1,
        }

    def test_stats_without_approvals(self, client: TestClient, employee: User, auth_headers):
        response = client.get("/approvals/stats", headers=auth_headers(employee))
        assert response.json()["totalApprovals"] == 0
        assert response.json()["overdueCount"] == 0


class TestOverdue:
    """Test suite for overdue approvals and reminders."""

    def test_admin_lists_overdue(
        self, client: TestClient, admin_user: User, overdue_approval: Approval, auth_headers
    ):
        response = client.get("/approvals/admin/overdue", headers=auth_headers(admin_user))
        assert response.status_code == 200
        assert [a["id"] for a in response.json()["approvals"]] == [overdue_approval.id]

    def test_not_yet_due_is_not_overdue(
        self, client: TestClient, admin_user: User, pending_approval: Approval, auth_headers
    ):
        response = client.get("/approvals/admin/overdue", headers=auth_headers(admin_user))
        assert response.json()["approvals"] == []

    def test_overdue_requires_admin(self, client: TestClient, editor_user: User, auth_headers):
        response = client.get("/approvals/admin/overdue", headers=auth_headers(editor_user))
        assert response.status_code == 403

    def test_send_reminders_once(
        self, client: TestClient, db_session: Session, admin_user: User, editor_user: User,
        overdue_approval: Approval, outbox: list, auth_headers
    ):
        headers = auth_headers(admin_user)
        first = client.post("/approvals/admin/send-reminders", headers=headers)
        assert first.status_code == 200
        assert first.json()["remindersSent"] == 1
        assert outbox[0]["To"] == editor_user.email

        db_session.refresh(overdue_approval)
        assert overdue_approval.reminder_sent is True
        assert overdue_approval.reminder_sent_at is not None

        second = client.post("/approvals/admin/send-reminders", headers=headers)
        assert second.json()["remindersSent"] == 0
        assert len(outbox) == 1
