"""
Incident detection layer.

Turns error evidence (from the runtime error monitor, a webhook, or a manual
trigger) into a structured Incident; falls back to the simulated scenario
when no evidence is supplied.
"""

from outagex.detection.detector import IncidentDetector, classify_severity
from outagex.detection.monitor import ErrorMonitor
from outagex.detection.simulator import DEMO_INCIDENT_ID

__all__ = ["DEMO_INCIDENT_ID", "ErrorMonitor", "IncidentDetector", "classify_severity"]
