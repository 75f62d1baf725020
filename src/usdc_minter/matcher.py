"""
Payment matcher.

Correlates a qualifying transfer with the sender's waiting mint request, or
creates a synthetic request when the sender paid without asking first.
"""

import logging
from collections.abc import Callable

from .ledger import RequestLedger
from .models import MintQueueItem, MintRequest, TransferEvent

logger = logging.getLogger(__name__)


class PaymentMatcher:
    """Turns qualifying transfers into mint work items."""

    def __init__(
        self,
        ledger: RequestLedger,
        enqueue: Callable[[MintQueueItem], None],
        request_ttl: float = 1800
    ) -> None:
        """
        Initialize the matcher.

        Args:
            ledger: Ledger to match against and record payments in
            enqueue: Hands a work item to the mint dispatcher
            request_ttl: Seconds after which a waiting request can no longer be matched
        """
        self.ledger = ledger
        self.enqueue = enqueue
        self.request_ttl = request_ttl

        self.payments_matched = 0
        self.payments_unmatched = 0

    def _find_waiting(self, sender: str) -> MintRequest | None:
        """First live waiting request for the sender, expiring stale ones on the way."""
        now = self.ledger.clock()
        for request in list(self.ledger.iter_waiting(sender)):
            if request.age(now) > self.request_ttl:
                request.mark_expired()
                logger.info(f"Request {request.payment_id} expired before payment arrived")
                continue
            return request
        return None

    async def handle_transfer(self, event: TransferEvent) -> MintRequest:
        """
        Match a qualifying transfer and enqueue the mint.

        Args:
            event: Deduplicated qualifying transfer

        Returns:
            The request the payment was recorded on
        """
        sender = event.from_address.lower()
        request = self._find_waiting(sender)

        if request:
            request.mark_paid(event.transaction_hash, self.ledger.clock())
            self.payments_matched += 1
            logger.info(f"✅ Payment {event.transaction_hash} matched to request {request.payment_id}")
        else:
            request = self.ledger.create_paid(sender, event.transaction_hash)
            self.payments_unmatched += 1
            logger.info(
                f"⚡ No pending request for {sender}, payment received anyway. "
                f"Auto-minting as {request.payment_id}"
            )

        self.enqueue(MintQueueItem(
            payment_id=request.payment_id,
            user_address=request.user_address,
            payment_tx_hash=event.transaction_hash,
        ))
        return request
