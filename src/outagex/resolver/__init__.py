"""
Source file resolution.

Finds the repository file behind an error from structured error fields,
stack traces, the suspected commit, or a bounded repository search.
"""

from outagex.resolver.resolver import SourceFileResolver

__all__ = ["SourceFileResolver"]
