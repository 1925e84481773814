"""Pattern detection over service logs: error rate, frequent errors, anomalies."""

import logging
from collections import Counter

from outagex.models import Anomaly, ErrorFrequency, LogAnalysis, LogEntry, LogLevel

logger = logging.getLogger(__name__)

TOP_ERRORS = 5
ERROR_SPIKE_RATE = 50.0
REPEATED_ERROR_SHARE = 0.3


def most_common_errors(logs: list[LogEntry], limit: int = TOP_ERRORS) -> list[ErrorFrequency]:
    """Error messages by descending count; equal counts keep first-seen order."""
    counts = Counter(entry.message for entry in logs if entry.level == LogLevel.ERROR)
    return [ErrorFrequency(message=m, count=c) for m, c in counts.most_common(limit)]


def error_rate(logs: list[LogEntry]) -> float:
    if not logs:
        return 0.0
    errors = sum(1 for entry in logs if entry.level == LogLevel.ERROR)
    return errors / len(logs) * 100


def detect_anomalies(logs: list[LogEntry], top: list[ErrorFrequency] | None = None) -> list[Anomaly]:
    anomalies: list[Anomaly] = []
    rate = error_rate(logs)
    if rate > ERROR_SPIKE_RATE:
        anomalies.append(Anomaly(type="error_spike", description=f"High error rate detected: {rate:.1f}%"))

    top = most_common_errors(logs) if top is None else top
    if top and logs and top[0].count >= len(logs) * REPEATED_ERROR_SHARE:
        anomalies.append(
            Anomaly(
                type="repeated_error",
                description=f'Same error repeated {top[0].count} times: "{top[0].message}"',
            )
        )
    return anomalies


class LogAnalyzer:
    """Summarizes a batch of log entries for the diagnosis phase."""

    def analyze(self, logs: list[LogEntry]) -> LogAnalysis:
        errors = sum(1 for entry in logs if entry.level == LogLevel.ERROR)
        rate = error_rate(logs)
        top = most_common_errors(logs)
        services = list(dict.fromkeys(entry.service for entry in logs))
        analysis = LogAnalysis(
            total_logs=len(logs),
            error_count=errors,
            error_rate=round(rate, 2),
            most_common_errors=top,
            affected_services=services,
            summary=f"Detected {errors} errors across {len(services)} services. Error rate: {rate:.1f}%.",
            anomalies=detect_anomalies(logs, top),
        )
        logger.info(
            "Log analysis complete",
            extra={"total_logs": analysis.total_logs, "error_rate": analysis.error_rate, "anomalies": len(analysis.anomalies)},
        )
        return analysis

    def insights(self, analysis: LogAnalysis) -> list[str]:
        """Human-readable bullet points for the chat stream."""
        lines = [f"Analyzed {analysis.total_logs} log entries with {analysis.error_rate:.2f}% error rate"]
        if analysis.most_common_errors:
            top = analysis.most_common_errors[0]
            lines.append(f'Most frequent error: "{top.message}" ({top.count} occurrences)')
        if analysis.summary:
            lines.append(analysis.summary)
        lines.extend(a.description for a in analysis.anomalies)
        return lines
