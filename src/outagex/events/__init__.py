"""
Outbound incident events.

The orchestrator publishes phase updates, timeline entries, proposals and
status changes to an EventPublisher; EventBus fans them out to subscribers
such as SlackEventSink.
"""

from outagex.events.bus import EventBus, EventPublisher, LoggingSubscriber
from outagex.events.slack import SlackEventSink

__all__ = ["EventBus", "EventPublisher", "LoggingSubscriber", "SlackEventSink"]
