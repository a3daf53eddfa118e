"""Domain event publishing for the Tenant Health Engine.

Two transports implement IEventPublisher:

- LogEventPublisher writes each event to the structured log. It is the
  default and needs no broker.
- KombuEventPublisher publishes JSON messages to a topic exchange on the
  AMQP broker shared with the Celery workers, routed by topic name.

AfterCommitPublisher wraps either one for services that run inside a
transaction, so subscribers only hear about committed writes.
"""

import asyncio
from typing import Any

from kombu import Connection, Exchange
from kombu.pools import producers

from tenant_health.core.interfaces import IEventPublisher
from tenant_health.observability import get_logger
from tenant_health.settings import Settings

logger = get_logger(__name__)


class LogEventPublisher:
    """Publishes events as structured log lines."""

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        logger.info(
            "Tenant health event",
            topic=topic,
            event_type=event.get("event_type"),
            tenant_id=event.get("tenant_id"),
            payload=event,
        )

    def close(self) -> None:
        return None


class AfterCommitPublisher:
    """Holds events until the surrounding transaction has committed.

    Services publish into it as usual; the owner of the transaction calls
    flush() after a successful commit. Events from a rolled-back
    transaction are never flushed.
    """

    def __init__(self, publisher: IEventPublisher) -> None:
        self._publisher = publisher
        self._pending: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        self._pending.append((topic, event))

    async def flush(self) -> None:
        pending, self._pending = self._pending, []
        for topic, event in pending:
            await self._publisher.publish(topic, event)


class KombuEventPublisher:
    """Publishes events to an AMQP topic exchange through Kombu.

    Kombu is synchronous; each publish runs in a worker thread and takes a
    producer from Kombu's connection pool.
    """

    def __init__(self, broker_url: str, exchange_name: str) -> None:
        """Initialise the connection and exchange.

        Args:
            broker_url: AMQP broker URL.
            exchange_name: Durable topic exchange to publish to.
        """
        self._connection = Connection(broker_url)
        self._exchange = Exchange(exchange_name, type="topic", durable=True)

    def _publish_sync(self, topic: str, event: dict[str, Any]) -> None:
        with producers[self._connection].acquire(block=True) as producer:
            producer.publish(
                event,
                exchange=self._exchange,
                routing_key=topic,
                serializer="json",
                declare=[self._exchange],
                retry=True,
                retry_policy={"max_retries": 3, "interval_start": 0, "interval_step": 1},
            )

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        """Publish an event, routed by its topic name.

        Args:
            topic: Topic name (use Topics.* constants).
            event: JSON-serialisable payload including event_type.
        """
        await asyncio.to_thread(self._publish_sync, topic, event)

        logger.debug(
            "Tenant health event published",
            topic=topic,
            event_type=event.get("event_type"),
            tenant_id=event.get("tenant_id"),
        )

    def close(self) -> None:
        self._connection.release()


def build_event_publisher(settings: Settings) -> LogEventPublisher | KombuEventPublisher:
    """Select the event transport configured in settings.

    Raises:
        ValueError: If event_transport is neither "log" nor "kombu".
    """
    if settings.event_transport == "log":
        return LogEventPublisher()
    if settings.event_transport == "kombu":
        return KombuEventPublisher(settings.celery_broker_url, settings.event_exchange)
    raise ValueError(f"Unknown event transport '{settings.event_transport}'")
