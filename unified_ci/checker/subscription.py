"""Long-running consumers of check messages.

These tasks never raise: failures are logged through the error sink and the
failed messages parked in the store under ``error:<id>`` until
:func:`retry_error_messages` puts them back on the queue.
"""

import asyncio
from collections.abc import Awaitable, Callable

import aiohttp
from pydantic import ValidationError

from ..config.exceptions import ConfigurationError
from ..config.loader import get_config
from ..logs import log_access, log_error
from ..message_queue import MessageQueue, QueueError, get_message_queue
from ..store import Store, StoreError, get_store
from ..utils import sleep_until_stopped
from .jobs import JobClient, JobError
from .messages import CheckMessage
from .mode import WorkingMode, get_working_mode
from .runner import run_checks

ERROR_KEY_PREFIX = "error:"

CheckRunner = Callable[[CheckMessage], Awaitable[int]]


async def save_error_message(store: Store, message: CheckMessage) -> None:
    """Park a failed message for a later retry."""
    await store.put(ERROR_KEY_PREFIX + message.id, message.model_dump_json())


async def handle_message(
    message: CheckMessage, runner: CheckRunner = run_checks
) -> None:
    """Run the checks of ``message``, parking it in the store if they fail."""
    try:
        await runner(message)
    except Exception as e:
        log_error.error(
            f"Checking {message.full_name}#{message.pull_number} failed: {e}"
        )
        try:
            await save_error_message(get_store(), message)
        except StoreError as se:
            log_error.error(f"Saving failed message {message.id} failed: {se}")


async def start_message_subscription(
    stop: asyncio.Event, runner: CheckRunner = run_checks
) -> None:
    """Consume the local topic and check every message until ``stop`` is set."""
    try:
        topic = get_config().queue.topic
        queue = get_message_queue()
    except (ConfigurationError, QueueError) as e:
        log_error.error(f"Message subscription not started: {e}")
        return

    async def handler(message: CheckMessage) -> None:
        await handle_message(message, runner)

    await queue.subscribe(topic, handler, stop)


async def retry_once(
    store: Store, queue: MessageQueue, topic: str, max_retries: int
) -> int:
    """Republish every parked message onto ``topic``.

    Messages that already used ``max_retries`` retries, or that no longer
    parse, are dropped.

    Returns:
        Number of republished messages
    """
    republished = 0
    for key, value in await store.scan(ERROR_KEY_PREFIX):
        try:
            message = CheckMessage.model_validate_json(value)
        except ValidationError as e:
            log_error.error(f"Dropping unreadable failed message {key}: {e}")
            await store.delete(key)
            continue

        if message.attempts >= max_retries:
            log_error.error(
                f"Giving up on {message.full_name}#{message.pull_number} "
                f"after {message.attempts} retries"
            )
            await store.delete(key)
            continue

        retry = message.model_copy(update={"attempts": message.attempts + 1})
        await queue.publish(topic, retry)
        await store.delete(key)
        republished += 1
    return republished


async def retry_error_messages(stop: asyncio.Event) -> None:
    """Periodically put failed messages back on the queue."""
    try:
        config = get_config()
        store = get_store()
        queue = get_message_queue()
        mode = get_working_mode()
    except (ConfigurationError, QueueError, StoreError, RuntimeError) as e:
        log_error.error(f"Error message retries not started: {e}")
        return

    if mode == WorkingMode.SERVER:
        topic = config.queue.worker_topic
    else:
        topic = config.queue.topic
    while not await sleep_until_stopped(stop, config.core.retry_interval):
        try:
            count = await retry_once(store, queue, topic, config.core.max_retries)
        except (StoreError, QueueError) as e:
            log_error.error(f"Retrying error messages failed: {e}")
            continue
        if count:
            log_access.info(f"Requeued {count} failed check message(s) on {topic}")


async def start_worker_message_subscription(
    stop: asyncio.Event, runner: CheckRunner = run_checks
) -> None:
    """Poll the server for jobs and check them until ``stop`` is set."""
    try:
        config = get_config()
    except ConfigurationError as e:
        log_error.error(f"Worker message subscription not started: {e}")
        return

    idle = config.core.job_poll_interval
    async with JobClient(config.core.server_url, config.core.worker_name) as jobs:
        log_access.info(
            f"Worker {config.core.worker_name} polling jobs "
            f"from {config.core.server_url}"
        )
        while not stop.is_set():
            try:
                message = await jobs.next_job()
            except (aiohttp.ClientError, TimeoutError, JobError) as e:
                log_error.error(f"Fetching job failed: {e}")
                message = None

            if message is None:
                if await sleep_until_stopped(stop, idle):
                    break
                continue

            try:
                await runner(message)
            except Exception as e:
                log_error.error(
                    f"Checking {message.full_name}#{message.pull_number} failed: {e}"
                )
                try:
                    await jobs.report_failure(message)
                except (aiohttp.ClientError, TimeoutError) as re:
                    log_error.error(f"Reporting failed job {message.id} failed: {re}")
