"""
Tests for case intake and triage endpoints.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from app.api.deps import get_servicenow_client
from app.core.config import settings
from app.db.models import AuditLog, CaseStatus, TransactionCase
from app.services.decision_tables import activate_decision_table, create_decision_table
from app.services.servicenow import ServiceNowClient
from app.services.triage.demo_tables import LOAN_TEST_VALUES, loan_decision_table


def use_servicenow(handler):
    """Route ServiceNow calls made by the app through a mock handler."""
    async def _client():
        yield ServiceNowClient(
            "https://dev.service-now.test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
    app.dependency_overrides[get_servicenow_client] = _client


class TestIntake:
    """Test case creation and listing."""

    def test_create_case(self, client: TestClient, operator_headers, db):
        response = client.post(
            "/cases",
            json={
                "policy_number": "UL-204-118-553",
                "owner_name": "Margaret Ellison",
                "transaction_type_key": "policy_loan",
                "policy_fields": {"policy_status": "Active"},
            },
            headers=operator_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "INTAKE"
        assert data["touch_level"] is None
        assert data["case_id"].startswith("TXN-")
        assert db.query(AuditLog).filter(AuditLog.event_type == "case.created").count() == 1

    def test_unknown_transaction_type(self, client: TestClient):
        response = client.post(
            "/cases",
            json={"policy_number": "X", "owner_name": "Y", "transaction_type_key": "surrender"},
        )
        assert response.status_code == 422

    def test_get_missing_case(self, client: TestClient):
        assert client.get("/cases/TXN-NOPE").status_code == 404

    def test_case_values(self, client: TestClient, loan_case, db):
        """Test the provider output merges sources and derives confidence."""
        loan_case.idp_fields = [
            {"field_name": "loan_amount", "extracted_value": "$5,000", "confidence_score": 98},
            {"field_name": "owner_signature", "extracted_value": "present", "confidence_score": 70},
        ]
        loan_case.policy_fields = {"policy_status": "Active", "mec_indicator": False}
        loan_case.workflow_fields = {"address_change_days": 45}
        db.commit()

        values = client.get(f"/cases/{loan_case.case_id}/values").json()
        assert values["loan_amount"] == "$5,000"
        assert values["mec_indicator"] == "No"
        assert values["address_change_days"] == "45"
        assert values["idp_confidence_avg"] == "84"
        assert values["idp_low_confidence_count"] == "1"


class TestCaseTriage:
    """Test triage of stored cases."""

    def test_triage_loan_case(self, client: TestClient, stored_loan_table, loan_case, db):
        """Test a run is stored and the case moves to TRIAGED."""
        response = client.post(f"/cases/{loan_case.case_id}/triage")
        assert response.status_code == 200
        data = response.json()
        assert data["result"]["touch_level"] == "MODERATE"
        assert data["result"]["matched_rule_id"] == "RULE-005"
        assert data["case"]["status"] == "TRIAGED"
        assert data["case"]["processing_queue"] == "moderate"
        assert data["case"]["triage_rule_matched"] == "RULE-005: Address Change <30d"
        assert data["servicenow_synced"] is None

        runs = client.get(f"/cases/{loan_case.case_id}/triage-runs").json()
        assert len(runs) == 1
        assert runs[0]["run_id"] == data["run_id"]
        assert runs[0]["table_id"] == stored_loan_table.id
        assert runs[0]["values"]["address_change_days"] == "15"

        assert db.query(AuditLog).filter(AuditLog.event_type == "case.triaged").count() == 1

    def test_retriage_keeps_history(self, client: TestClient, stored_loan_table, loan_case, db):
        """Test the latest run becomes current and earlier runs are kept."""
        client.post(f"/cases/{loan_case.case_id}/triage")
        loan_case.workflow_fields = {"address_change_days": "45"}
        db.commit()
        data = client.post(f"/cases/{loan_case.case_id}/triage").json()

        assert data["case"]["touch_level"] == "STP"
        assert data["case"]["processing_queue"] == "low"
        runs = client.get(f"/cases/{loan_case.case_id}/triage-runs").json()
        assert [r["touch_level"] for r in runs] == ["MODERATE", "STP"]

    def test_no_active_table(self, client: TestClient, loan_case):
        response = client.post(f"/cases/{loan_case.case_id}/triage")
        assert response.status_code == 409

    def test_fallback_is_audited(self, client: TestClient, loan_case, db):
        """Test a table without a default records a fallback anomaly."""
        table = loan_decision_table()
        table.rules = [r for r in table.rules if not r.is_default]
        create_decision_table(db, table)
        activate_decision_table(db, table.id)

        loan_case.policy_fields = dict(LOAN_TEST_VALUES, address_change_days="45", idp_confidence_avg="88")
        db.commit()

        data = client.post(f"/cases/{loan_case.case_id}/triage").json()
        assert data["result"]["matched_rule_id"] == "FALLBACK"
        assert data["result"]["touch_level"] == "MODERATE"
        assert db.query(AuditLog).filter(AuditLog.event_type == "triage.fallback").count() == 1


class TestServiceNowWriteBack:
    """Test touch level write-back after triage."""

    @pytest.fixture(autouse=True)
    def writeback_enabled(self, monkeypatch):
        monkeypatch.setattr(settings, "SERVICENOW_WRITEBACK_ENABLED", True)

    def test_writeback_success(self, client: TestClient, stored_loan_table, loan_case, db):
        """Test the touch level is PATCHed to the linked record."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": {"sys_id": "abc123"}})

        use_servicenow(handler)
        loan_case.sn_sys_id = "abc123"
        db.commit()

        data = client.post(
            f"/cases/{loan_case.case_id}/triage",
            headers={"Authorization": "Bearer sn-token"},
        ).json()

        assert data["servicenow_synced"] is True
        assert len(seen) == 1
        assert seen[0].method == "PATCH"
        assert seen[0].url.path == f"/api/now/table/{settings.SERVICENOW_CASE_TABLE}/abc123"
        assert seen[0].headers["authorization"] == "Bearer sn-token"
        assert b'"touch_level":"MODERATE"' in seen[0].content.replace(b" ", b"")

    def test_writeback_failure_is_not_fatal(self, client: TestClient, stored_loan_table, loan_case, db):
        """Test a ServiceNow error leaves the local triage in place."""
        use_servicenow(lambda request: httpx.Response(403, json={"error": {"message": "ACL"}}))
        loan_case.sn_sys_id = "abc123"
        db.commit()

        response = client.post(f"/cases/{loan_case.case_id}/triage")
        assert response.status_code == 200
        data = response.json()
        assert data["servicenow_synced"] is False
        assert data["case"]["status"] == "TRIAGED"
        assert db.query(AuditLog).filter(AuditLog.event_type == "servicenow.sync_failed").count() == 1

    def test_unlinked_case_is_not_synced(self, client: TestClient, stored_loan_table, loan_case):
        use_servicenow(lambda request: pytest.fail("ServiceNow should not be called"))
        data = client.post(f"/cases/{loan_case.case_id}/triage").json()
        assert data["servicenow_synced"] is None


class TestPipeline:
    """Test pipeline counts."""

    def test_pipeline_counts(self, client: TestClient, stored_loan_table, loan_case, db):
        db.add(TransactionCase(
            case_id="TXN-NIGO0001",
            policy_number="UL-000-000-001",
            owner_name="Out Of Order",
            transaction_type_key="policy_loan",
            status=CaseStatus.NIGO,
        ))
        db.add(TransactionCase(
            case_id="TXN-NEW00001",
            policy_number="UL-000-000-002",
            owner_name="Waiting",
            transaction_type_key="policy_loan",
        ))
        db.commit()
        client.post(f"/cases/{loan_case.case_id}/triage")

        data = client.get("/cases/pipeline").json()
        assert data["total"] == 3
        assert data["by_touch_level"] == {"STP": 0, "LOW": 0, "MODERATE": 1, "HIGH": 0}
        assert data["nigo"] == 1
        assert data["untriaged"] == 1

    def test_list_filters_by_touch_level(self, client: TestClient, stored_loan_table, loan_case):
        client.post(f"/cases/{loan_case.case_id}/triage")
        assert len(client.get("/cases", params={"touch_level": "MODERATE"}).json()) == 1
        assert client.get("/cases", params={"touch_level": "HIGH"}).json() == []
        assert len(client.get("/cases", params={"status": "TRIAGED"}).json()) == 1
