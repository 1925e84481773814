"""
Commit correlation and incident research.

Finds the commit most likely behind an error and gathers related findings
from every configured research provider concurrently.
"""

from outagex.research.perplexity import PerplexityResearchClient
from outagex.research.researcher import CommitCorrelator, Researcher
from outagex.research.web_search import BraveResearchClient, ExaResearchClient

__all__ = [
    "BraveResearchClient",
    "CommitCorrelator",
    "ExaResearchClient",
    "PerplexityResearchClient",
    "Researcher",
]
