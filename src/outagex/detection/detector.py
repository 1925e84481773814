"""Incident creation from error evidence, with the severity rule table."""

import logging

from outagex.detection.simulator import simulated_incident
from outagex.models import ErrorEvidence, Incident, IncidentStatus, Severity

logger = logging.getLogger(__name__)


def classify_severity(error_rate: float, affected_services: int) -> Severity:
    """
    Severity from error rate (or count) and number of affected services.

    critical if rate > 50 or services > 5; high if rate > 25 or services > 2;
    medium if rate > 10 or services > 1; otherwise low.
    """
    if error_rate > 50 or affected_services > 5:
        return Severity.CRITICAL
    if error_rate > 25 or affected_services > 2:
        return Severity.HIGH
    if error_rate > 10 or affected_services > 1:
        return Severity.MEDIUM
    return Severity.LOW


class IncidentDetector:
    """Turns error evidence into an Incident; without evidence, returns the simulated scenario."""

    def detect(self, evidence: ErrorEvidence | None = None) -> Incident:
        if evidence is None:
            incident = simulated_incident()
            logger.info("Incident detected (simulated)", extra={"incident_id": incident.id})
            return incident

        first = evidence.first_error
        title = evidence.error_message or (first.message if first else "") or "Runtime Error Detected"
        if evidence.source == "runtime_monitor":
            description = (
                f"Detected {evidence.error_count} runtime errors in project "
                f"{evidence.project_name or 'unknown'}. Errors are occurring in production."
            )
        else:
            description = evidence.error_message or "An error occurred in production"

        incident = Incident(
            title=title,
            description=description,
            severity=classify_severity(evidence.error_count or 1, 1),
            status=IncidentStatus.DETECTING,
            affected_services=[evidence.project_name or "unknown"],
        )
        logger.info(
            "Incident detected",
            extra={
                "incident_id": incident.id,
                "source": evidence.source,
                "project_id": evidence.project_id,
                "severity": incident.severity.value,
            },
        )
        return incident
