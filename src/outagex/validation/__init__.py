"""
Solution validation.

Syntax-checks candidate fix code in an ephemeral sandbox and rejects model
output that is prose or placeholder text rather than code.
"""

from outagex.validation.sandbox import LocalSandbox, SandboxRuntime
from outagex.validation.validator import SolutionValidator, assess_risk

__all__ = ["LocalSandbox", "SandboxRuntime", "SolutionValidator", "assess_risk"]
