"""Tests for the event bus and the Slack event sink."""

from unittest.mock import MagicMock, patch

import pytest

from outagex.events import EventBus, LoggingSubscriber, SlackEventSink
from outagex.events.slack import _build_solution_blocks, _build_status_blocks, _build_status_text
from outagex.models import ChatMessage, ChatRole, Event, EventName, Incident, Severity, Solution


def _incident_payload(status="resolved"):
    incident = Incident(
        id="inc-1",
        title="Checkout 502s",
        description="d",
        severity=Severity.HIGH,
        affected_services=["checkout", "payments"],
    )
    return {"status": status, "incident": incident.model_dump(mode="json")}


def _chat(content="hello"):
    return Event(
        name=EventName.CHAT_MESSAGE,
        payload={"message": ChatMessage(role=ChatRole.AGENT, content=content).model_dump(mode="json")},
    )


@pytest.mark.asyncio
async def test_bus_delivers_to_sync_and_async_subscribers_in_order():
    received = []

    def sync_subscriber(event):
        received.append(("sync", event.name))

    async def async_subscriber(event):
        received.append(("async", event.name))

    bus = EventBus()
    bus.subscribe(sync_subscriber)
    bus.subscribe(async_subscriber)
    await bus.publish(_chat())
    assert received == [("sync", EventName.CHAT_MESSAGE), ("async", EventName.CHAT_MESSAGE)]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus = EventBus()
    bus.subscribe(broken)
    bus.subscribe(received.append)
    await bus.publish(_chat())
    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe():
    received = []
    bus = EventBus()
    unsubscribe = bus.subscribe(received.append)
    unsubscribe()
    unsubscribe()
    await bus.publish(_chat())
    assert received == []


def test_logging_subscriber_logs_chat_content(caplog):
    caplog.set_level("INFO")
    LoggingSubscriber()(_chat("Root cause found"))
    assert "[chat:message] Root cause found" in caplog.text


def test_build_status_text_and_blocks():
    payload = _incident_payload()
    text = _build_status_text(payload)
    assert "inc-1" in text
    assert "*resolved*" in text
    blocks = _build_status_blocks(payload)
    assert blocks[0]["type"] == "header"
    assert "checkout, payments" in blocks[-1]["text"]["text"]


def test_build_solution_blocks_lists_steps():
    solution = Solution(description="Limit depth", confidence=91, steps=["Patch", "Deploy"])
    blocks = _build_solution_blocks(
        {"solution": solution.model_dump(mode="json"), "root_cause": {"description": "Recursion"}}
    )
    assert blocks[0]["text"]["text"] == "OutageX Solution Proposed"
    assert "91%" in blocks[1]["fields"][2]["text"]
    assert "• Patch" in blocks[-1]["text"]["text"]


@pytest.mark.asyncio
async def test_slack_sink_without_token_does_nothing():
    sink = SlackEventSink(bot_token="", channel_id="C123")
    assert await sink.handle(_chat()) is False


@pytest.mark.asyncio
@patch("slack_sdk.WebClient")
async def test_slack_sink_posts_status_change(mock_webclient_class):
    mock_client = MagicMock()
    mock_webclient_class.return_value = mock_client
    sink = SlackEventSink(bot_token="xoxb-fake", channel_id="C123")

    sent = await sink.handle(Event(name=EventName.STATUS_CHANGE, payload=_incident_payload()))

    assert sent is True
    mock_webclient_class.assert_called_once_with(token="xoxb-fake")
    kwargs = mock_client.chat_postMessage.call_args.kwargs
    assert kwargs["channel"] == "C123"
    assert "inc-1" in kwargs["text"]
    assert kwargs["blocks"][0]["type"] == "header"


@pytest.mark.asyncio
async def test_slack_sink_posts_chat_text_and_ignores_other_events():
    client = MagicMock()
    sink = SlackEventSink(bot_token="xoxb-fake", channel_id="C123", client=client)

    assert await sink.handle(_chat("Fix applied")) is True
    client.chat_postMessage.assert_called_once_with(channel="C123", text="Fix applied")

    assert await sink.handle(Event(name=EventName.TIMELINE_ADD, payload={"entry": {}})) is False
    assert client.chat_postMessage.call_count == 1


@pytest.mark.asyncio
async def test_slack_api_error_is_reported_not_raised():
    client = MagicMock()
    client.chat_postMessage.side_effect = Exception("channel_not_found")
    sink = SlackEventSink(bot_token="xoxb-fake", channel_id="C404", client=client)
    assert await sink.handle(_chat()) is False
