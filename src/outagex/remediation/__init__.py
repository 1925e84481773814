"""
Remediation layer: apply approved solutions.

Patches become a branch, a commit and a pull request on the source
repository; rollbacks and restarts go to the deployment platform
(AWS Lambda aliases via LambdaDeploymentClient).
"""

from outagex.remediation.aws_executor import LambdaDeploymentClient
from outagex.remediation.executor import SolutionExecutor

__all__ = ["LambdaDeploymentClient", "SolutionExecutor"]
