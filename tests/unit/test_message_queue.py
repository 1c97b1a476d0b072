"""
Unit tests for the redis message queue.

Why: Check requests travel through the queue; encoding mistakes or an
     unhandled redis outage would stop every check.

What: Tests publish and pop encoding, malformed message handling, redis
      failures and the subscription loop.

How: Replaces the redis client with an AsyncMock.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from unified_ci import message_queue as queue_module
from unified_ci.checker.messages import CheckMessage
from unified_ci.message_queue import (
    MessageQueue,
    QueueError,
    close_message_queue,
    get_message_queue,
    init_message_queue,
)


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def queue(redis_client: AsyncMock) -> MessageQueue:
    queue = MessageQueue(
        "redis://localhost:6379/0", poll_timeout=1, reconnect_delay=0.01
    )
    queue._client = redis_client
    return queue


class TestPublishAndPop:
    async def test_publish_appends_json(
        self, queue: MessageQueue, redis_client: AsyncMock, check_message: CheckMessage
    ) -> None:
        await queue.publish("checks", check_message)

        topic, payload = redis_client.rpush.call_args.args
        assert topic == "checks"
        assert CheckMessage.model_validate_json(payload) == check_message

    async def test_pop_decodes_message(
        self, queue: MessageQueue, redis_client: AsyncMock, check_message: CheckMessage
    ) -> None:
        redis_client.blpop.return_value = ("checks", check_message.model_dump_json())

        assert await queue.pop("checks") == check_message
        redis_client.blpop.assert_awaited_once_with(["checks"], timeout=1)

    async def test_pop_timeout(
        self, queue: MessageQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.blpop.return_value = None

        assert await queue.pop("checks", timeout=3) is None
        redis_client.blpop.assert_awaited_once_with(["checks"], timeout=3)

    async def test_malformed_message_is_dropped(
        self, queue: MessageQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.blpop.return_value = ("checks", '{"owner": "octo"}')

        assert await queue.pop("checks") is None

    async def test_redis_failure(
        self, queue: MessageQueue, redis_client: AsyncMock, check_message: CheckMessage
    ) -> None:
        redis_client.rpush.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(QueueError, match="connection refused"):
            await queue.publish("checks", check_message)


class TestSubscribe:
    async def test_feeds_handler_until_stopped(
        self, queue: MessageQueue, redis_client: AsyncMock, check_message: CheckMessage
    ) -> None:
        """
        Why: The local subscription is a long-running task that must survive
             redis hiccups and stop promptly.
        What: Tests that a redis failure is retried, messages reach the
              handler and the loop ends once stop is set.
        How: Makes blpop fail once, then return a message; the handler sets
             the stop event.
        """
        stop = asyncio.Event()
        handled: list[CheckMessage] = []
        redis_client.blpop.side_effect = [
            RedisConnectionError("connection reset"),
            ("checks", check_message.model_dump_json()),
        ]

        async def handler(message: CheckMessage) -> None:
            handled.append(message)
            stop.set()

        await asyncio.wait_for(queue.subscribe("checks", handler, stop), timeout=5)

        assert handled == [check_message]
        assert redis_client.blpop.await_count == 2


class TestProcessQueue:
    async def test_lifecycle(
        self, monkeypatch: pytest.MonkeyPatch, redis_client: AsyncMock
    ) -> None:
        monkeypatch.setattr(queue_module, "_queue", None)
        monkeypatch.setattr(
            queue_module.redis, "from_url", lambda *a, **kw: redis_client
        )

        with pytest.raises(QueueError, match="not initialized"):
            get_message_queue()

        queue = await init_message_queue("redis://localhost:6379/0")
        assert get_message_queue() is queue
        redis_client.ping.assert_awaited_once()

        await close_message_queue()
        redis_client.aclose.assert_awaited_once()
        with pytest.raises(QueueError):
            get_message_queue()

    async def test_unreachable_redis(
        self, monkeypatch: pytest.MonkeyPatch, redis_client: AsyncMock
    ) -> None:
        monkeypatch.setattr(queue_module, "_queue", None)
        monkeypatch.setattr(
            queue_module.redis, "from_url", lambda *a, **kw: redis_client
        )
        redis_client.ping.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(QueueError, match="Failed to connect"):
            await init_message_queue("redis://localhost:6379/0")
