"""Message queue on top of redis lists.

Producers ``publish`` check messages onto a topic (a redis list); consumers
either ``pop`` one message or run ``subscribe`` until their stop event fires.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from .checker.messages import CheckMessage
from .utils import sleep_until_stopped

logger = logging.getLogger(__name__)

MessageHandler = Callable[[CheckMessage], Awaitable[None]]


class QueueError(Exception):
    """Raised when the queue cannot be reached."""


class MessageQueue:
    """Redis backed queue of :class:`CheckMessage`."""

    def __init__(self, url: str, poll_timeout: int = 1, reconnect_delay: float = 5.0):
        self.url = url
        self.poll_timeout = poll_timeout
        self.reconnect_delay = reconnect_delay
        self._client: Any | None = None

    async def _get_client(self) -> Any:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def connect(self) -> None:
        """Connect and verify the server answers.

        Raises:
            QueueError: If redis is unreachable
        """
        try:
            client = await self._get_client()
            await client.ping()
        except RedisError as e:
            raise QueueError(f"Failed to connect to message queue: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def publish(self, topic: str, message: CheckMessage) -> None:
        """Append ``message`` to ``topic``.

        Raises:
            QueueError: If the message cannot be stored
        """
        try:
            client = await self._get_client()
            await client.rpush(topic, message.model_dump_json())
        except RedisError as e:
            raise QueueError(f"Failed to publish to {topic}: {e}") from e

    async def pop(self, topic: str, timeout: int | None = None) -> CheckMessage | None:
        """Pop the oldest message, waiting up to ``timeout`` seconds.

        Malformed messages are logged and dropped.

        Raises:
            QueueError: If redis fails
        """
        try:
            client = await self._get_client()
            item = await client.blpop([topic], timeout=timeout or self.poll_timeout)
        except RedisError as e:
            raise QueueError(f"Failed to pop from {topic}: {e}") from e

        if item is None:
            return None

        _, payload = item
        try:
            return CheckMessage.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message on {topic}: {e}")
            return None

    async def subscribe(
        self, topic: str, handler: MessageHandler, stop: asyncio.Event
    ) -> None:
        """Feed messages of ``topic`` to ``handler`` until ``stop`` is set.

        Queue failures are logged and retried after ``reconnect_delay``. The
        handler is responsible for its own errors.
        """
        logger.info(f"Subscribed to {topic}")
        while not stop.is_set():
            try:
                message = await self.pop(topic)
            except QueueError as e:
                logger.error(f"Message subscription on {topic} failed: {e}")
                if await sleep_until_stopped(stop, self.reconnect_delay):
                    break
                continue

            if message is not None:
                await handler(message)
        logger.info(f"Unsubscribed from {topic}")


_queue: MessageQueue | None = None


async def init_message_queue(url: str, poll_timeout: int = 1) -> MessageQueue:
    """Connect the process-wide message queue."""
    global _queue

    queue = MessageQueue(url, poll_timeout=poll_timeout)
    await queue.connect()
    _queue = queue
    return queue


def get_message_queue() -> MessageQueue:
    """Get the process-wide message queue.

    Raises:
        QueueError: If the queue is not initialized (worker mode)
    """
    if _queue is None:
        raise QueueError("Message queue not initialized")
    return _queue


async def close_message_queue() -> None:
    global _queue

    if _queue is not None:
        await _queue.close()
        _queue = None
