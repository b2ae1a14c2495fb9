"""Unit tests for FHIR response models."""

from src.termbundle.fhir.response_models import (
    EntryResponse,
    OperationOutcome,
    OperationOutcomeIssue,
    ResponseBundle,
    collect_issue_messages,
    parse_operation_outcome,
)


class TestOperationOutcome:
    """Test OperationOutcome message extraction."""

    def test_message_prefers_diagnostics(self):
        issue = OperationOutcomeIssue(
            severity="error", code="invalid", diagnostics="Bad code", details={"text": "Details"}
        )
        assert issue.get_message() == "Bad code"

    def test_message_falls_back_to_details_then_code(self):
        assert OperationOutcomeIssue(details={"text": "Details"}).get_message() == "Details"
        assert OperationOutcomeIssue(code="not-found").get_message() == "not-found"

    def test_message_includes_expression(self):
        issue = OperationOutcomeIssue(diagnostics="Required", expression=["ValueSet.status"])
        assert issue.get_message() == "Required (ValueSet.status)"

    def test_information_issues_not_reported(self):
        outcome = OperationOutcome.model_validate(
            {
                "resourceType": "OperationOutcome",
                "issue": [
                    {"severity": "information", "diagnostics": "All good"},
                    {"severity": "warning", "diagnostics": "Deprecated"},
                ],
            }
        )
        assert outcome.get_messages() == ["Deprecated"]
        assert outcome.get_full_message() == "All good; Deprecated"

    def test_parse_rejects_other_documents(self):
        assert parse_operation_outcome({"resourceType": "Bundle"}) is None
        assert parse_operation_outcome(None) is None
        assert parse_operation_outcome({"resourceType": "OperationOutcome", "issue": "x"}) is None


class TestResponseBundle:
    """Test search and batch response bundles."""

    def test_next_url(self):
        bundle = ResponseBundle.model_validate(
            {
                "resourceType": "Bundle",
                "link": [
                    {"relation": "self", "url": "http://a"},
                    {"relation": "next", "url": "http://b"},
                ],
            }
        )
        assert bundle.get_next_url() == "http://b"

    def test_no_next_url(self):
        assert ResponseBundle.model_validate({"resourceType": "Bundle"}).get_next_url() is None

    def test_entry_status_code(self):
        assert EntryResponse(status="201 Created").status_code == 201
        assert EntryResponse(status="200").status_code == 200
        assert EntryResponse(status="").status_code is None


class TestCollectIssueMessages:
    """Test issue collection from submission responses."""

    def test_all_entries_ok(self):
        response = {
            "resourceType": "Bundle",
            "entry": [{"response": {"status": "201 Created"}}, {"response": {"status": "200 OK"}}],
        }
        assert collect_issue_messages(response) == []

    def test_failed_entry_without_outcome(self):
        response = {
            "resourceType": "Bundle",
            "entry": [{"response": {"status": "200 OK"}}, {"response": {"status": "409 Conflict"}}],
        }
        assert collect_issue_messages(response) == ["Entry 1: 409 Conflict"]

    def test_warning_on_successful_entry(self):
        response = {
            "resourceType": "Bundle",
            "entry": [
                {
                    "response": {
                        "status": "200 OK",
                        "outcome": {
                            "resourceType": "OperationOutcome",
                            "issue": [{"severity": "warning", "diagnostics": "Display mismatch"}],
                        },
                    }
                }
            ],
        }
        assert collect_issue_messages(response) == ["Display mismatch"]

    def test_bare_operation_outcome(self):
        response = {
            "resourceType": "OperationOutcome",
            "issue": [{"severity": "fatal", "diagnostics": "Database down"}],
        }
        assert collect_issue_messages(response) == ["Database down"]

    def test_unexpected_shape(self):
        assert collect_issue_messages({"resourceType": "Bundle", "entry": "?"}) == []
