"""AWS Lambda deployment client: alias rollback and redeploy via boto3."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from outagex.config import Settings, get_settings
from outagex.errors import ExternalServiceError
from outagex.integrations.base import DeploymentClient

logger = logging.getLogger(__name__)


def _published_versions(client: Any, function_name: str) -> list[int]:
    """Published version numbers, newest first ($LATEST excluded)."""
    versions = client.list_versions_by_function(FunctionName=function_name).get("Versions") or []
    numbers = []
    for v in versions:
        try:
            numbers.append(int(v.get("Version", "")))
        except (TypeError, ValueError):
            continue
    return sorted(numbers, reverse=True)


def previous_version(current: str | None, published: list[int]) -> str | None:
    """Version to roll back to: the one before current, or the second newest when the alias tracks $LATEST."""
    if not current:
        return None
    if current == "$LATEST":
        return str(published[1]) if len(published) >= 2 else None
    try:
        current_num = int(current)
    except (TypeError, ValueError):
        return None
    older = [n for n in published if n < current_num]
    return str(older[0]) if older else None


class LambdaDeploymentClient(DeploymentClient):
    """
    Treats a Lambda alias as the live deployment of a project.

    ``project`` is the function name. Rollback points the alias at the
    previous published version; redeploy publishes $LATEST and points the
    alias at the new version. boto3 calls run in a worker thread.
    """

    def __init__(self, alias_name: str | None = None, client: Any = None, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._alias = (alias_name or self._settings.lambda_alias_name or "live").strip()
        self._client = client

    def _lambda(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("lambda", region_name=self._settings.aws_region)
        return self._client

    async def rollback(self, project: str, deployment_id: str | None = None) -> dict[str, Any]:
        return await self._call(self._rollback, project)

    async def redeploy(self, project: str, deployment_id: str | None = None) -> dict[str, Any]:
        return await self._call(self._redeploy, project)

    async def _call(self, fn, function_name: str) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(fn, function_name)
        except ExternalServiceError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ExternalServiceError("lambda", str(e)) from e

    def _rollback(self, function_name: str) -> dict[str, Any]:
        client = self._lambda()
        alias = client.get_alias(FunctionName=function_name, Name=self._alias)
        current = alias.get("FunctionVersion")
        target = previous_version(current, _published_versions(client, function_name))
        if target is None:
            raise ExternalServiceError("lambda", f"no previous version of {function_name} to roll back to")
        client.update_alias(FunctionName=function_name, Name=self._alias, FunctionVersion=target)
        logger.info("Lambda rollback: %s alias %s -> version %s", function_name, self._alias, target)
        return {"function": function_name, "alias": self._alias, "from_version": current, "version": target}

    def _redeploy(self, function_name: str) -> dict[str, Any]:
        client = self._lambda()
        published = client.publish_version(FunctionName=function_name)
        version = published.get("Version")
        client.update_alias(FunctionName=function_name, Name=self._alias, FunctionVersion=version)
        logger.info("Lambda redeploy: %s alias %s -> version %s", function_name, self._alias, version)
        return {"function": function_name, "alias": self._alias, "version": version}
