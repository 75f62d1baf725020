"""
Mint dispatcher.

Serializes mint submissions behind one worker task. The signer's nonce
sequencing is only safe with one transaction in flight, so exactly one
consumer ever drains the queue; items arriving mid-drain are picked up by
the same worker.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from .ledger import RequestLedger
from .models import MintQueueItem, MintReceipt, MintRequest, MintStatus
from .token_client import MintSubmissionError

if TYPE_CHECKING:
    from .reporter import MintObserver
    from .token_client import TokenContractClient

logger = logging.getLogger(__name__)


class MintDispatcher:
    """Single-worker queue that submits mints and records their outcome."""

    def __init__(
        self,
        ledger: RequestLedger,
        token_client: "TokenContractClient",
        observers: Iterable["MintObserver"] = (),
        retry_delay: float = 30,
        max_attempts: int = 3,
        clock: Callable[[], float] = time.time
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            ledger: Ledger holding the requests being minted
            token_client: Mint contract collaborator
            observers: Hooks run after a mint is committed
            retry_delay: Seconds before a failed item is re-enqueued
            max_attempts: Mint submissions allowed per request
            clock: Returns the current time in Unix seconds
        """
        self.ledger = ledger
        self.token_client = token_client
        self.observers = list(observers)
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self.clock = clock

        self.queue: asyncio.Queue[MintQueueItem] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._retry_tasks: set[asyncio.Task] = set()
        self._observer_tasks: set[asyncio.Task] = set()

        # Metrics tracking
        self.mints_completed = 0
        self.mints_failed = 0
        self.retries_scheduled = 0

    def enqueue(self, item: MintQueueItem) -> None:
        """Append an item; the running worker will pick it up."""
        self.queue.put_nowait(item)
        logger.debug(f"Enqueued mint for {item.payment_id} (attempt {item.attempt})")

    def start(self) -> None:
        if self._worker and not self._worker.done():
            logger.warning("MintDispatcher already running")
            return
        self._worker = asyncio.create_task(self._run(), name="mint-dispatcher")
        logger.info("MintDispatcher started")

    async def _run(self) -> None:
        while True:
            item = await self.queue.get()
            try:
                await self._process(item)
            except Exception as e:
                logger.error(f"Unexpected error minting {item.payment_id}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    async def _process(self, item: MintQueueItem) -> None:
        request = self.ledger.get(item.payment_id)
        if request is None:
            logger.warning(f"Mint request {item.payment_id} no longer in ledger, skipping")
            return
        if request.status is MintStatus.COMPLETED:
            logger.warning(f"Mint request {item.payment_id} already completed, skipping")
            return

        request.mark_minting()
        logger.info(
            f"🔥 Minting for {item.user_address} "
            f"(request {item.payment_id}, attempt {request.attempts}/{self.max_attempts})"
        )

        try:
            receipt = await self._submit(item)
        except Exception as e:
            retryable = request.attempts < self.max_attempts
            request.mark_failed(str(e), retryable=retryable)
            self.mints_failed += 1

            # Keep tracking a broadcast mint until its outcome is known
            unconfirmed = item.unconfirmed_mint_tx
            if isinstance(e, MintSubmissionError) and e.tx_hash:
                unconfirmed = e.tx_hash

            if retryable:
                logger.error(
                    f"❌ Mint failed for {item.user_address}: {e}. "
                    f"Retrying in {self.retry_delay}s"
                )
                self._schedule_retry(dataclasses.replace(
                    item, attempt=item.attempt + 1, unconfirmed_mint_tx=unconfirmed
                ))
            else:
                logger.error(
                    f"❌ Mint failed for {item.user_address} after {request.attempts} attempts, "
                    f"giving up: {e}"
                )
                if unconfirmed:
                    logger.warning(f"Mint transaction {unconfirmed} for {item.payment_id} may still confirm")
            return

        request.mark_completed(receipt.tx_hash, receipt.block_number, self.clock())
        self.mints_completed += 1
        logger.info(f"✅ Tokens minted for {item.payment_id} in {receipt.tx_hash}")

        self._notify(request, receipt)

    async def _submit(self, item: MintQueueItem) -> MintReceipt:
        """Mint for an item, reusing an earlier broadcast if it went through."""
        if item.unconfirmed_mint_tx:
            receipt = await self.token_client.find_mint_receipt(item.unconfirmed_mint_tx)
            if receipt is not None:
                logger.info(f"Earlier mint {receipt.tx_hash} for {item.payment_id} confirmed, not resubmitting")
                return receipt
        return await self.token_client.mint_to(item.user_address)

    def _notify(self, request: MintRequest, receipt: MintReceipt) -> None:
        """Run observers in the background so the worker moves on immediately."""
        for observer in self.observers:
            task = asyncio.create_task(self._run_observer(observer, request, receipt))
            self._observer_tasks.add(task)
            task.add_done_callback(self._observer_tasks.discard)

    async def _run_observer(self, observer: "MintObserver", request: MintRequest, receipt: MintReceipt) -> None:
        try:
            await observer.on_mint_completed(request, receipt)
        except Exception as e:
            logger.warning(f"Mint observer {type(observer).__name__} failed: {e}")

    def _schedule_retry(self, item: MintQueueItem) -> None:
        self.retries_scheduled += 1
        task = asyncio.create_task(self._requeue_after(item))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _requeue_after(self, item: MintQueueItem) -> None:
        await asyncio.sleep(self.retry_delay)
        self.enqueue(item)

    @property
    def pending_retries(self) -> int:
        return len(self._retry_tasks)

    async def join(self) -> None:
        """Wait until the queue is empty and no retry or observer is still running."""
        while True:
            await self.queue.join()
            if not self._retry_tasks and not self._observer_tasks:
                return
            await asyncio.gather(*self._retry_tasks, *self._observer_tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel the worker, scheduled retries and running observers."""
        tasks = [*self._retry_tasks, *self._observer_tasks]
        if self._worker:
            tasks.append(self._worker)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
        self._worker = None
        self._retry_tasks.clear()
        self._observer_tasks.clear()
        logger.info("MintDispatcher stopped")

    def get_stats(self) -> dict[str, int]:
        return {
            "queued": self.queue.qsize(),
            "pending_retries": self.pending_retries,
            "pending_reports": len(self._observer_tasks),
            "mints_completed": self.mints_completed,
            "mints_failed": self.mints_failed,
            "retries_scheduled": self.retries_scheduled,
        }
