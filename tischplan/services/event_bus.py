"""
Event-Bus für Push-Benachrichtigungen.

Jede Änderung an Tischen, Buchungen, Etagen und der Warteliste sowie jeder
Hinweis wird als Event mit eindeutiger ID veröffentlicht. Zustellung ist
"at least once": Abonnenten, die mit IdempotentHandler eingehängt sind,
verwerfen bereits gesehene IDs. WebSocket-Clients bekommen die Events über
eine Queue pro Verbindung.
"""
import asyncio
import enum
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from tischplan.utils.timeutils import utcnow

logger = logging.getLogger("tischplan.services.event_bus")


class EventTopic(str, enum.Enum):
    TABLE_UPDATED = "table_updated"
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    FLOOR_CREATED = "floor_created"
    WAITING_LIST_UPDATED = "waiting_list_updated"
    UPCOMING_BOOKING = "upcoming_booking_notification"
    LONG_WAITING = "long_waiting_customer"


@dataclass
class Event:
    topic: EventTopic
    data: dict
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event": self.topic.value,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }


Handler = Callable[[Event], None]


class IdempotentHandler:
    """Wrapper, der jedes Event nur einmal an den Handler weitergibt."""

    def __init__(self, handler: Handler, max_remembered: int = 1000):
        self._handler = handler
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._max_remembered = max_remembered
        self._lock = threading.Lock()

    def __call__(self, event: Event) -> None:
        with self._lock:
            if event.id in self._seen:
                logger.debug(f"Event {event.id} bereits verarbeitet, übersprungen")
                return
            self._seen[event.id] = None
            if len(self._seen) > self._max_remembered:
                self._seen.popitem(last=False)
        self._handler(event)


class EventBus:

    def __init__(self):
        self._handlers: dict[Optional[EventTopic], list[Handler]] = {}
        self._connections: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._lock = threading.Lock()

    # ============ ABONNENTEN ============

    def subscribe(self, topic: Optional[EventTopic], handler: Handler) -> Handler:
        """topic=None abonniert alle Events."""
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)
        return handler

    def unsubscribe(self, topic: Optional[EventTopic], handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    # ============ WEBSOCKET-VERBINDUNGEN ============

    def connect(self, loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._connections.append((loop, queue))
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._connections = [(l, q) for l, q in self._connections if q is not queue]

    # ============ VERÖFFENTLICHEN ============

    def publish(self, topic: EventTopic, data: dict, event_id: Optional[str] = None) -> Event:
        """
        Veröffentlicht ein Event. Nur nach erfolgreichem Commit aufrufen,
        damit keine Zwischenstände sichtbar werden.
        """
        event = Event(topic=topic, data=data)
        if event_id:
            event.id = event_id
        self.deliver(event)
        return event

    def deliver(self, event: Event) -> None:
        """Stellt ein (evtl. bereits zugestelltes) Event erneut zu."""
        with self._lock:
            handlers = list(self._handlers.get(event.topic, [])) + list(self._handlers.get(None, []))
            connections = list(self._connections)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # Die Änderung ist bereits committet, ein fehlerhafter Abonnent darf sie nicht kippen
                logger.exception(f"Event-Handler fehlgeschlagen für {event.topic.value} ({event.id})")

        message = event.to_message()
        for loop, queue in connections:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(queue.put_nowait, message)

        logger.debug(f"Event {event.topic.value} veröffentlicht ({event.id})")


event_bus = EventBus()
