"""Submit an assembled bundle to a terminology server.

The assembly bundle is a ``collection``; servers only process ``batch`` and
``transaction`` bundles, so it is converted first. Each entry gets a request:

- ``PUT {type}/{id}`` when the resource has an id (server keeps our ids)
- ``POST {type}`` otherwise

A batch is used rather than a transaction so that one bad entry does not
roll back the rest; per-entry problems come back as issues.
"""

from typing import Any

import structlog

from ..fhir.connection import TerminologyConnection
from ..fhir.response_models import collect_issue_messages
from ..models.bundle import Bundle
from ..models.results import SubmissionResult, SubmissionStatus
from ..utils.exceptions import FHIRServerError

logger = structlog.get_logger(__name__)


def to_submission_bundle(bundle: Bundle) -> dict[str, Any]:
    """
    Convert an assembly bundle into a FHIR batch bundle.

    Args:
        bundle: Assembled bundle

    Returns:
        Batch Bundle document, entries in bundle order
    """
    entries: list[dict[str, Any]] = []
    for entry in bundle.entries:
        resource = entry.resource
        if resource.id:
            request = {"method": "PUT", "url": f"{resource.resource_type}/{resource.id}"}
        else:
            request = {"method": "POST", "url": resource.resource_type}
        entries.append({"resource": resource.to_fhir(), "request": request})

    return {"resourceType": "Bundle", "type": "batch", "entry": entries}


async def submit_bundle(connection: TerminologyConnection, bundle: Bundle) -> SubmissionResult:
    """
    Submit ``bundle`` as a batch.

    Args:
        connection: Target server
        bundle: Bundle to submit

    Returns:
        SubmissionResult; a server error body yields ``rejected`` with the
        response kept

    Raises:
        NetworkFailure: If the server could not be reached at all
    """
    document = to_submission_bundle(bundle)
    logger.info("Submitting bundle", target=connection.name, entries=len(document["entry"]))

    try:
        response = await connection.submit(document)
    except FHIRServerError as e:
        issues = list(e.issues) or [str(e)]
        logger.warning(
            "Bundle rejected by server",
            target=connection.name,
            status_code=e.status_code,
            issues=len(issues),
        )
        return SubmissionResult(
            status=SubmissionStatus.REJECTED,
            response=e.response,
            issues=issues,
            status_code=e.status_code,
        )

    issues = collect_issue_messages(response)
    status = SubmissionStatus.ACCEPTED_WITH_ISSUES if issues else SubmissionStatus.ACCEPTED
    logger.info(
        "Bundle submitted",
        target=connection.name,
        status=status.value,
        issues=len(issues),
    )
    return SubmissionResult(status=status, response=response, issues=issues)
