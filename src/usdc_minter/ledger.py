"""
In-memory request ledger for mint requests.

Requests are kept in insertion order so that scans by address always
see the earliest-created request first.
"""

import logging
import secrets
import time
from collections.abc import Callable, Iterator

from .models import MintRequest, MintStatus

logger = logging.getLogger(__name__)


class RequestLedger:
    """
    Table of outstanding and historical mint requests keyed by payment id.

    Only the matcher and the mint dispatcher mutate entries, both from the
    monitor's event loop, so no locking is needed.
    """

    SYNTHETIC_PREFIX = "auto-"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the ledger.

        Args:
            clock: Returns the current time in Unix seconds
        """
        self.clock = clock
        self._requests: dict[str, MintRequest] = {}

    def _new_payment_id(self, synthetic: bool) -> str:
        while True:
            payment_id = (
                self.SYNTHETIC_PREFIX + secrets.token_hex(8) if synthetic else secrets.token_hex(16)
            )
            if payment_id not in self._requests:
                return payment_id

    def create(self, user_address: str) -> str:
        """
        Store a new request waiting for payment.

        Args:
            user_address: Address that will pay and receive the tokens

        Returns:
            The generated payment id
        """
        payment_id = self._new_payment_id(synthetic=False)
        self._requests[payment_id] = MintRequest(
            payment_id=payment_id,
            user_address=user_address.lower(),
            created_at=self.clock(),
        )
        logger.info(f"Created mint request {payment_id} for {user_address.lower()}")
        return payment_id

    def create_paid(self, user_address: str, payment_tx_hash: str) -> MintRequest:
        """
        Store a synthetic request for a payment that arrived unannounced.

        The request is born in payment_received.
        """
        payment_id = self._new_payment_id(synthetic=True)
        now = self.clock()
        request = MintRequest(
            payment_id=payment_id,
            user_address=user_address.lower(),
            created_at=now,
            synthetic=True,
        )
        request.mark_paid(payment_tx_hash, now)
        self._requests[payment_id] = request
        logger.info(f"Created synthetic request {payment_id} for {request.user_address}")
        return request

    def get(self, payment_id: str) -> MintRequest | None:
        return self._requests.get(payment_id)

    def __getitem__(self, payment_id: str) -> MintRequest:
        return self._requests[payment_id]

    def find_active_by_address(self, user_address: str, max_age: float | None = None) -> MintRequest | None:
        """
        Return the first request for the address that is not terminal.

        Args:
            user_address: Address to look up
            max_age: If given, also skip requests older than this many seconds
                unless their payment is already captured
        """
        address = user_address.lower()
        now = self.clock()
        for request in self._requests.values():
            if request.user_address != address or request.is_terminal:
                continue
            if max_age is not None and request.age(now) > max_age and not request.is_in_flight:
                continue
            return request
        return None

    def iter_waiting(self, user_address: str) -> Iterator[MintRequest]:
        """Yield waiting_for_payment requests for the address in creation order."""
        address = user_address.lower()
        for request in self._requests.values():
            if request.user_address == address and request.status is MintStatus.WAITING_FOR_PAYMENT:
                yield request

    def sweep_expired(self, max_age: float, keep_in_flight: bool = True) -> int:
        """
        Remove requests older than max_age seconds.

        Args:
            max_age: Retention window in seconds
            keep_in_flight: Keep requests whose payment was captured but whose
                mint is not yet confirmed, so a paying user is never orphaned

        Returns:
            Number of requests removed
        """
        now = self.clock()
        expired = [
            payment_id
            for payment_id, request in self._requests.items()
            if request.age(now) > max_age and not (keep_in_flight and request.is_in_flight)
        ]
        for payment_id in expired:
            del self._requests[payment_id]

        if expired:
            logger.info(f"Swept {len(expired)} expired mint requests")
        return len(expired)

    def __len__(self) -> int:
        return len(self._requests)

    def __iter__(self) -> Iterator[MintRequest]:
        return iter(list(self._requests.values()))

    def get_stats(self) -> dict[str, int]:
        """
        Get request counts by status.

        Returns:
            Dictionary with one entry per status plus the total
        """
        stats = {status.value: 0 for status in MintStatus}
        for request in self._requests.values():
            stats[request.status.value] += 1
        stats["total"] = len(self._requests)
        return stats
