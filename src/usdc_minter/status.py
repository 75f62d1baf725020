"""
Read-only status lookups over the request ledger.
"""

from typing import Any

from .ledger import RequestLedger
from .models import MintRequest, MintStatus


def _ms(timestamp: float | None) -> int | None:
    return int(timestamp * 1000) if timestamp is not None else None


class StatusService:
    """Answers status queries by payment id or by address."""

    def __init__(self, ledger: RequestLedger, request_ttl: float = 1800) -> None:
        self.ledger = ledger
        self.request_ttl = request_ttl

    def is_aged_out(self, request: MintRequest, now: float | None = None) -> bool:
        """
        True when the request should read as expired.

        A captured payment whose mint is still pending never ages out.
        """
        now = self.ledger.clock() if now is None else now
        return request.age(now) > self.request_ttl and not request.is_in_flight

    def expires_at(self, request: MintRequest) -> int:
        return int((request.created_at + self.request_ttl) * 1000)

    def get_status(self, payment_id: str) -> dict[str, Any]:
        """
        Status record for a payment id.

        Timestamps are epoch milliseconds.
        """
        request = self.ledger.get(payment_id)
        if request is None:
            return {"found": False, "error": "Payment ID not found"}

        if request.status is MintStatus.EXPIRED or self.is_aged_out(request):
            return {
                "found": True,
                "paymentId": request.payment_id,
                "status": MintStatus.EXPIRED.value,
                "message": "Payment window expired",
                "timestamp": _ms(request.created_at),
            }

        record: dict[str, Any] = {
            "found": True,
            "paymentId": request.payment_id,
            "status": request.status.value,
            "userAddress": request.user_address,
            "synthetic": request.synthetic,
            "paymentTxHash": request.payment_tx_hash,
            "mintTxHash": request.mint_tx_hash,
            "timestamp": _ms(request.created_at),
            "paidAt": _ms(request.paid_at),
            "completedAt": _ms(request.completed_at),
            "expiresAt": self.expires_at(request),
            "attempts": request.attempts,
        }
        if request.status is MintStatus.MINT_FAILED:
            record["error"] = request.error
            record["retryable"] = request.retryable
        return record

    def find_pending_by_address(self, user_address: str) -> dict[str, Any]:
        """First non-terminal, non-expired request for the address."""
        request = self.ledger.find_active_by_address(user_address, max_age=self.request_ttl)
        if request is None:
            return {"hasPending": False}
        return {
            "hasPending": True,
            "paymentId": request.payment_id,
            "status": request.status.value,
            "timestamp": _ms(request.created_at),
        }
