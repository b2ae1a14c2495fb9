"""Pydantic models for FHIR server responses.

Covers the parts of server replies the client and the submission step read:
search result bundles (paging links), batch response bundles (per-entry
status and outcome) and OperationOutcome error bodies.

Design Principles:
- Graceful degradation: extra="allow" for unknown fields
- Optional validation: callers fall back to raw data when a body does not fit
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Issue severities reported to the user after a submission
REPORTED_SEVERITIES: frozenset[str] = frozenset({"fatal", "error", "warning"})


class CodeableConcept(BaseModel):
    """Only ``text`` is read."""

    text: str | None = None

    model_config = ConfigDict(extra="allow")


class OperationOutcomeIssue(BaseModel):
    """One OperationOutcome.issue."""

    severity: str = "error"
    code: str | None = None
    diagnostics: str | None = None
    details: CodeableConcept | None = None
    expression: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def get_message(self) -> str:
        """Best human-readable text for this issue."""
        text = self.diagnostics or (self.details.text if self.details else None)
        if not text:
            text = self.code or "unspecified issue"
        if self.expression:
            text = f"{text} ({', '.join(self.expression)})"
        return text


class OperationOutcome(BaseModel):
    """FHIR OperationOutcome."""

    resourceType: str = Field(default="OperationOutcome")
    issue: list[OperationOutcomeIssue] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def get_messages(self, severities: frozenset[str] = REPORTED_SEVERITIES) -> list[str]:
        """Messages of issues whose severity is in ``severities``."""
        return [i.get_message() for i in self.issue if i.severity in severities]

    def get_full_message(self) -> str:
        """All issue messages joined into one line."""
        messages = [i.get_message() for i in self.issue]
        return "; ".join(messages) if messages else "OperationOutcome without issues"


class BundleLink(BaseModel):
    relation: str
    url: str

    model_config = ConfigDict(extra="allow")


class EntryResponse(BaseModel):
    """Bundle.entry.response of a batch/transaction response."""

    status: str = ""
    location: str | None = None
    outcome: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def status_code(self) -> int | None:
        """Numeric part of ``status`` ("201 Created" -> 201)."""
        head = self.status.strip().split(" ", 1)[0]
        return int(head) if head.isdigit() else None


class ResponseEntry(BaseModel):
    fullUrl: str | None = None
    resource: dict[str, Any] | None = None
    response: EntryResponse | None = None

    model_config = ConfigDict(extra="allow")


class ResponseBundle(BaseModel):
    """Search-set or batch-response Bundle."""

    resourceType: str = Field(default="Bundle")
    type: str | None = None
    total: int | None = None
    link: list[BundleLink] = Field(default_factory=list)
    entry: list[ResponseEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def get_next_url(self) -> str | None:
        for link in self.link:
            if link.relation == "next":
                return link.url
        return None

    def get_resources(self) -> list[dict[str, Any]]:
        """Entry resources, skipping OperationOutcome entries servers add to search sets."""
        return [
            e.resource
            for e in self.entry
            if e.resource and e.resource.get("resourceType") != "OperationOutcome"
        ]


def parse_operation_outcome(data: Any) -> OperationOutcome | None:
    """Validate ``data`` as an OperationOutcome, or return None."""
    if not isinstance(data, dict) or data.get("resourceType") != "OperationOutcome":
        return None
    try:
        return OperationOutcome.model_validate(data)
    except ValidationError:
        return None


def collect_issue_messages(response: dict[str, Any]) -> list[str]:
    """
    Collect every per-entry problem reported in a batch response bundle.

    An entry contributes its OperationOutcome issue messages (fatal, error,
    warning) and, when its status is not 2xx and it carries no outcome, the
    status line itself.

    Args:
        response: Decoded response Bundle (or a bare OperationOutcome)

    Returns:
        Issue messages in entry order
    """
    outcome = parse_operation_outcome(response)
    if outcome is not None:
        return outcome.get_messages()

    try:
        bundle = ResponseBundle.model_validate(response)
    except ValidationError:
        return []

    messages: list[str] = []
    for index, entry in enumerate(bundle.entry):
        entry_response = entry.response
        if entry_response is None:
            continue

        entry_outcome = parse_operation_outcome(entry_response.outcome)
        entry_messages = entry_outcome.get_messages() if entry_outcome else []
        messages.extend(entry_messages)

        code = entry_response.status_code
        if not entry_messages and code is not None and code >= 300:
            messages.append(f"Entry {index}: {entry_response.status}")

    return messages
