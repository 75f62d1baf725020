"""
Chain watcher for qualifying stablecoin transfers.

Two delivery paths run side by side: a WebSocket log subscription (push) and
a trailing-window re-scan (poll). Both only enqueue raw logs onto one internal
queue; a single consumer task decodes, validates and deduplicates them and
calls the transfer handler, so downstream state is never mutated from two
callback contexts at once.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from .event_processor import TransferEventProcessor
from .models import TransferEvent
from .utils.event_listener_utility import EventListenerUtility
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)

TransferHandler = Callable[[TransferEvent], Awaitable[Any]]


class ChainWatcher:
    """
    Observes the chain and yields every qualifying transfer exactly once.

    The push path is optional: if it cannot be established, or gives up
    after its reconnect attempts, polling continues as the sole source.
    """

    def __init__(
        self,
        processor: TransferEventProcessor,
        poll_listener: PollingEventListener,
        contract_address: str,
        topics: list[str | None],
        push_listener: EventListenerUtility | None = None,
        polling_interval: int = 15,
        queue_size: int = 10_000
    ) -> None:
        """
        Initialize the chain watcher.

        Args:
            processor: Decodes, validates and deduplicates raw logs
            poll_listener: Poll path
            contract_address: Stablecoin contract for the push subscription
            topics: Topic filter for the push subscription
            push_listener: Push path (None disables it)
            polling_interval: Seconds between poll ticks
            queue_size: Bound on raw logs awaiting the consumer
        """
        self.processor = processor
        self.poll_listener = poll_listener
        self.push_listener = push_listener
        self.contract_address = contract_address
        self.topics = topics
        self.polling_interval = polling_interval

        self.queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self.deliveries: Counter[str] = Counter()
        self.push_active = False
        self._handler: TransferHandler | None = None
        self._tasks: dict[str, asyncio.Task] = {}

    async def deliver(self, source: str, log: Any) -> None:
        """Enqueue a raw log from one of the delivery paths."""
        self.deliveries[source] += 1
        await self.queue.put((source, log))

    async def _consume(self) -> None:
        """Single consumer: the only place logs turn into handler calls."""
        while True:
            source, log = await self.queue.get()
            try:
                event = self.processor.process_log(log)
                if event and self._handler:
                    logger.debug(f"Dispatching {event.transaction_hash} (via {source})")
                    await self._handler(event)
            except Exception as e:
                logger.error(f"Error handling transfer from {source} path: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    async def _run_push(self, listener: EventListenerUtility) -> None:
        self.push_active = True
        try:
            await listener.listen_for_logs(
                contract_address=self.contract_address,
                topics=self.topics,
                callback=partial(self.deliver, "push"),
                label="usdc-transfer"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Push subscription unavailable, relying on polling: {e}")
        finally:
            self.push_active = False

    def start(self, handler: TransferHandler) -> None:
        """
        Start the consumer and both delivery paths as background tasks.

        Args:
            handler: Called once per qualifying, never-seen transfer
        """
        if self._tasks:
            logger.warning("ChainWatcher already started")
            return

        self._handler = handler
        self._tasks["consumer"] = asyncio.create_task(self._consume(), name="watcher-consumer")
        self._tasks["poll"] = asyncio.create_task(
            self.poll_listener.start_polling(
                callback=partial(self.deliver, "poll"),
                interval=self.polling_interval
            ),
            name="watcher-poll"
        )
        if self.push_listener:
            self._tasks["push"] = asyncio.create_task(self._run_push(self.push_listener), name="watcher-push")

        logger.info(
            f"ChainWatcher started (push: {'on' if self.push_listener else 'off'}, "
            f"poll every {self.polling_interval}s)"
        )

    async def drain(self) -> None:
        """Wait until every enqueued log has been handled."""
        await self.queue.join()

    async def stop(self) -> None:
        """Stop both delivery paths and the consumer."""
        await self.poll_listener.stop()
        if self.push_listener:
            await self.push_listener.stop()

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        for name, task in self._tasks.items():
            try:
                await task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
            except Exception as e:
                logger.error(f"Watcher {name} task ended with error: {e}")
        self._tasks.clear()
        logger.info("ChainWatcher stopped")

    def get_status(self) -> dict[str, Any]:
        return {
            "running": bool(self._tasks),
            "push_active": self.push_active,
            "queued": self.queue.qsize(),
            "deliveries": dict(self.deliveries),
            "poll": self.poll_listener.get_status(),
            **self.processor.get_metrics(),
        }
