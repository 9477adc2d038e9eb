"""
Tests for decision table API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from app.db.models import AuditLog
from app.services.triage.demo_tables import LOAN_TEST_VALUES, loan_decision_table


@pytest.fixture
def draft_payload() -> dict:
    data = loan_decision_table().to_dict()
    data["id"] = "DT-LOAN-002"
    data["version"] = "2.0"
    return data


class TestTableLifecycle:
    """Test create/activate/archive/delete."""

    def test_create_is_draft(self, client: TestClient, draft_payload, operator_headers):
        """Test new tables are stored as drafts regardless of payload status."""
        response = client.post("/decision-tables", json=draft_payload, headers=operator_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert len(data["rules"]) == 9

    def test_create_duplicate_conflicts(self, client: TestClient, draft_payload):
        client.post("/decision-tables", json=draft_payload)
        response = client.post("/decision-tables", json=draft_payload)
        assert response.status_code == 409

    def test_create_rejects_unknown_operator(self, client: TestClient, draft_payload):
        """Test schema validation of condition operators."""
        draft_payload["rules"][0]["conditions"][0]["operator"] = "matches"
        response = client.post("/decision-tables", json=draft_payload)
        assert response.status_code == 422

    def test_get_missing_table(self, client: TestClient):
        response = client.get("/decision-tables/DT-NOPE")
        assert response.status_code == 404

    def test_activate_archives_previous(self, client: TestClient, stored_loan_table, draft_payload):
        """Test only one table per transaction type is active."""
        client.post("/decision-tables", json=draft_payload)
        response = client.post("/decision-tables/DT-LOAN-002/activate")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

        previous = client.get(f"/decision-tables/{stored_loan_table.id}").json()
        assert previous["status"] == "archived"

        active = client.get("/decision-tables", params={"transaction_type_key": "policy_loan", "status": "active"})
        assert [t["id"] for t in active.json()] == ["DT-LOAN-002"]

    def test_activate_with_errors_rejected(self, client: TestClient, draft_payload):
        """Test a structurally broken table cannot be activated."""
        draft_payload["rules"][0]["conditions"] = draft_payload["rules"][0]["conditions"][1:]
        client.post("/decision-tables", json=draft_payload)
        response = client.post("/decision-tables/DT-LOAN-002/activate")
        assert response.status_code == 409

    def test_cannot_delete_active_table(self, client: TestClient, stored_loan_table):
        response = client.delete(f"/decision-tables/{stored_loan_table.id}")
        assert response.status_code == 409

    def test_archive_then_delete(self, client: TestClient, stored_loan_table):
        assert client.post(f"/decision-tables/{stored_loan_table.id}/archive").status_code == 200
        assert client.delete(f"/decision-tables/{stored_loan_table.id}").status_code == 204
        assert client.get(f"/decision-tables/{stored_loan_table.id}").status_code == 404

    def test_replace_keeps_path_id(self, client: TestClient, stored_loan_table, draft_payload):
        draft_payload["name"] = "Policy Loan Triage v2"
        response = client.put(f"/decision-tables/{stored_loan_table.id}", json=draft_payload)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == stored_loan_table.id
        assert data["name"] == "Policy Loan Triage v2"
        assert data["status"] == "active"


class TestTableEditing:
    """Test authoring endpoints."""

    def test_add_column(self, client: TestClient, stored_loan_table, operator_headers, db):
        """Test adding a column adds a wildcard to every rule and audits the edit."""
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/columns",
            json={"field_name": "owner_state", "display_name": "Owner State", "entity_source": "Policy"},
            headers=operator_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["columns"][-1]["id"] == "col_owner_state"
        for rule in data["rules"]:
            if not rule["is_default"]:
                assert rule["conditions"][-1]["operator"] == "any"

        entry = db.query(AuditLog).filter(AuditLog.event_type == "table.updated").first()
        assert entry.actor_id == "ops-jlee"
        assert entry.details["action"] == "add_column"

    def test_add_duplicate_column(self, client: TestClient, stored_loan_table):
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/columns",
            json={"field_name": "policy_status"},
        )
        assert response.status_code == 400

    def test_remove_column(self, client: TestClient, stored_loan_table):
        response = client.delete(f"/decision-tables/{stored_loan_table.id}/columns/col_mec_indicator")
        assert response.status_code == 200
        for rule in response.json()["rules"]:
            assert all(c["column_id"] != "col_mec_indicator" for c in rule["conditions"])

    def test_remove_missing_column(self, client: TestClient, stored_loan_table):
        response = client.delete(f"/decision-tables/{stored_loan_table.id}/columns/col_missing")
        assert response.status_code == 404

    def test_add_and_remove_rule(self, client: TestClient, stored_loan_table):
        """Test rule orders stay contiguous."""
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/rules",
            json={"description": "Large loan", "output_touch_level": "HIGH"},
        )
        assert response.status_code == 201
        new_rule = response.json()["rules"][-2]
        assert new_rule["order"] == 9

        response = client.delete(f"/decision-tables/{stored_loan_table.id}/rules/RULE-001")
        orders = [r["order"] for r in response.json()["rules"] if not r["is_default"]]
        assert sorted(orders) == list(range(1, 9))

    def test_reorder_rules(self, client: TestClient, stored_loan_table):
        ids = [r.id for r in stored_loan_table.ordered_rules]
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/rules/reorder",
            json={"rule_ids": list(reversed(ids))},
        )
        assert response.status_code == 200
        rules = {r["id"]: r["order"] for r in response.json()["rules"]}
        assert rules["RULE-008"] == 1
        assert rules["RULE-001"] == 8

    def test_reorder_must_be_complete(self, client: TestClient, stored_loan_table):
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/rules/reorder",
            json={"rule_ids": ["RULE-001"]},
        )
        assert response.status_code == 400

    def test_update_condition_changes_outcome(self, client: TestClient, stored_loan_table):
        """Test tightening the address rule changes the what-if result."""
        response = client.patch(
            f"/decision-tables/{stored_loan_table.id}/rules/RULE-005/conditions/c_rule-005_address_change_days",
            json={"operator": "lte", "value": "10"},
        )
        assert response.status_code == 200

        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/evaluate",
            json={"values": LOAN_TEST_VALUES},
        )
        assert response.json()["matched_rule_id"] == "RULE-008"

    def test_update_rule(self, client: TestClient, stored_loan_table):
        response = client.patch(
            f"/decision-tables/{stored_loan_table.id}/rules/RULE-005",
            json={"output_touch_level": "HIGH"},
        )
        rule = next(r for r in response.json()["rules"] if r["id"] == "RULE-005")
        assert rule["output_touch_level"] == "HIGH"

    def test_set_default_rule(self, client: TestClient, stored_loan_table):
        response = client.put(
            f"/decision-tables/{stored_loan_table.id}/default-rule",
            json={"output_touch_level": "MODERATE"},
        )
        assert response.status_code == 200
        defaults = [r for r in response.json()["rules"] if r["is_default"]]
        assert len(defaults) == 1
        assert defaults[0]["output_touch_level"] == "MODERATE"

    def test_validate(self, client: TestClient, stored_loan_table):
        response = client.get(f"/decision-tables/{stored_loan_table.id}/validate")
        assert response.status_code == 200
        assert response.json() == {"table_id": stored_loan_table.id, "valid": True, "issues": []}


class TestStoredTableEvaluation:
    """Test what-if evaluation of stored tables."""

    def test_evaluate_loan_demo(self, client: TestClient, stored_loan_table):
        """Test the loan demo values route to MODERATE via the address rule."""
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/evaluate",
            json={"values": LOAN_TEST_VALUES},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["touch_level"] == "MODERATE"
        assert data["matched_rule_id"] == "RULE-005"
        assert data["processing_queue"] == "moderate"
        assert data["key_factors"] == ["Days Since Address Change: 15"]

    def test_evaluate_accepts_numbers(self, client: TestClient, stored_loan_table):
        """Test non-string JSON values are stringified before evaluation."""
        values = dict(LOAN_TEST_VALUES, address_change_days=45, idp_confidence_avg=92.0)
        response = client.post(
            f"/decision-tables/{stored_loan_table.id}/evaluate",
            json={"values": values},
        )
        assert response.json()["touch_level"] == "STP"


class TestTableHistory:
    """Test the audit trail of table edits."""

    def test_history_lists_edits_newest_first(self, client: TestClient, stored_loan_table, operator_headers):
        client.post(
            f"/decision-tables/{stored_loan_table.id}/rules",
            json={"description": "Large loan"},
            headers=operator_headers,
        )
        client.post(f"/decision-tables/{stored_loan_table.id}/archive", headers=operator_headers)

        history = client.get(f"/decision-tables/{stored_loan_table.id}/history").json()
        assert [e["event_type"] for e in history][:2] == ["table.archived", "table.updated"]
        assert history[0]["actor_id"] == "ops-jlee"
        assert "_metadata" not in history[1]["details"]
