"""Outbound event channel: publisher interface and in-process fan-out bus."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Union

from outagex.models import Event

logger = logging.getLogger(__name__)

Subscriber = Callable[[Event], Union[Awaitable[None], None]]


class EventPublisher(ABC):
    """One-directional event sink; delivery is at-most-once with no acknowledgement."""

    @abstractmethod
    async def publish(self, event: Event) -> None:
        ...


class EventBus(EventPublisher):
    """
    Delivers each event to every subscriber in subscription order.

    Subscribers may be plain or async callables. A subscriber that raises
    is logged and skipped; the remaining subscribers still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: Event) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "Event subscriber failed: %s",
                    e,
                    extra={"event": event.name.value},
                    exc_info=True,
                )


class LoggingSubscriber:
    """Writes every event to the log at INFO; chat messages carry their text."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def __call__(self, event: Event) -> None:
        message = event.payload.get("message")
        if isinstance(message, dict) and "content" in message:
            self._log.info("[%s] %s", event.name.value, message["content"])
        else:
            self._log.info("[%s] %s", event.name.value, ", ".join(sorted(event.payload)))
