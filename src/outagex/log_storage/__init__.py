"""
Log storage and analysis.

Provides service logs and incident records for the log analysis phase,
and computes error rate, frequent errors and anomalies over them.
"""

from outagex.log_storage.analyzer import LogAnalyzer
from outagex.log_storage.store import LogStore

__all__ = ["LogAnalyzer", "LogStore"]
