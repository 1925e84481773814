"""Slack sink: posts chat messages, proposed solutions and status changes to a channel."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from outagex.models import Event, EventName

logger = logging.getLogger(__name__)

_STATUS_EMOJI = {
    "proposing": ":bulb:",
    "executing": ":gear:",
    "resolved": ":white_check_mark:",
    "failed": ":x:",
}


def _build_status_text(payload: dict[str, Any]) -> str:
    """Plain-text fallback for notifications and accessibility."""
    incident = payload.get("incident") or {}
    status = payload.get("status", "unknown")
    lines = [f"*OutageX* incident `{incident.get('id', '?')}` is now *{status}*"]
    if incident.get("title"):
        lines.append(f"*Incident:* {incident['title']}")
    if incident.get("severity"):
        lines.append(f"*Severity:* {incident['severity']}")
    return "\n".join(lines)


def _build_status_blocks(payload: dict[str, Any]) -> list[dict]:
    """Block Kit layout for an incident status change."""
    incident = payload.get("incident") or {}
    status = str(payload.get("status", "unknown"))
    blocks: list[dict] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"OutageX: incident {status}", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Incident:*\n`{incident.get('id', '?')}`"},
                {"type": "mrkdwn", "text": f"*Status:*\n{_STATUS_EMOJI.get(status, '')} {status}".rstrip()},
            ],
        },
    ]
    if incident.get("title"):
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*Title:*\n{incident['title']}"}})
    services = incident.get("affected_services") or []
    if services:
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": "*Affected services:*\n" + ", ".join(services)}}
        )
    return blocks


def _build_solution_text(payload: dict[str, Any]) -> str:
    solution = payload.get("solution") or {}
    root_cause = payload.get("root_cause") or {}
    return (
        f"*OutageX solution proposed* ({solution.get('type', '?')}, "
        f"{solution.get('confidence', '?')}% confidence, {solution.get('risk', '?')} risk)\n"
        f"*Root cause:* {root_cause.get('description', '')}\n"
        f"*Fix:* {solution.get('description', '')}"
    )


def _build_solution_blocks(payload: dict[str, Any]) -> list[dict]:
    """Block Kit layout for a proposed solution."""
    solution = payload.get("solution") or {}
    root_cause = payload.get("root_cause") or {}
    blocks: list[dict] = [
        {"type": "header", "text": {"type": "plain_text", "text": "OutageX Solution Proposed", "emoji": True}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Type:*\n{solution.get('type', '?')}"},
                {"type": "mrkdwn", "text": f"*Risk:*\n{solution.get('risk', '?')}"},
                {"type": "mrkdwn", "text": f"*Confidence:*\n{solution.get('confidence', '?')}%"},
                {"type": "mrkdwn", "text": f"*Estimated time:*\n{solution.get('estimated_time', '?')}"},
            ],
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*Root cause:*\n{root_cause.get('description', '')}"}},
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*Fix:*\n{solution.get('description', '')}"}},
    ]
    steps = solution.get("steps") or []
    if steps:
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": "*Steps:*\n" + "\n".join(f"• {s}" for s in steps)}}
        )
    return blocks


class SlackEventSink:
    """
    Event subscriber that mirrors the incident conversation to Slack via
    slack_sdk WebClient and Block Kit.

    Handles chat:message, solution:proposed and status:change; other events
    are ignored. Does nothing when token or channel is not configured.
    """

    def __init__(self, bot_token: str = "", channel_id: str = "", client: Any = None) -> None:
        self.bot_token = bot_token
        self.channel_id = channel_id
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.channel_id)

    def _web_client(self):
        if self._client is None:
            from slack_sdk import WebClient

            self._client = WebClient(token=self.bot_token)
        return self._client

    async def __call__(self, event: Event) -> None:
        await self.handle(event)

    async def handle(self, event: Event) -> bool:
        """Post the event if it is one Slack cares about. Returns True when a message was sent."""
        if event.name == EventName.CHAT_MESSAGE:
            message = event.payload.get("message") or {}
            text, blocks = str(message.get("content", "")), None
        elif event.name == EventName.SOLUTION_PROPOSED:
            text, blocks = _build_solution_text(event.payload), _build_solution_blocks(event.payload)
        elif event.name == EventName.STATUS_CHANGE:
            text, blocks = _build_status_text(event.payload), _build_status_blocks(event.payload)
        else:
            return False
        return await self.post(text, blocks)

    async def post(self, text: str, blocks: list[dict] | None = None) -> bool:
        """Send to the configured channel. Returns False if token/channel missing or the API call fails."""
        if not self.enabled:
            logger.debug("Slack post skipped: no token or channel", extra={"preview": text[:80]})
            return False
        kwargs: dict[str, Any] = {"channel": self.channel_id, "text": text}
        if blocks:
            kwargs["blocks"] = blocks
        try:
            await asyncio.to_thread(self._web_client().chat_postMessage, **kwargs)
        except Exception as e:  # noqa: BLE001
            logger.warning("Slack post failed: %s", e, exc_info=True)
            return False
        return True
