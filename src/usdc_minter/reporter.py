"""
Best-effort reporting of completed mints to an external indexer.

The reporter is an observer invoked after a mint has been committed to the
ledger. Its failures are logged and never propagate.
"""

import json
import logging
import time
from typing import Any, Protocol

import httpx

from .models import MintReceipt, MintRequest

logger = logging.getLogger(__name__)


class MintObserver(Protocol):
    """Hook called by the mint dispatcher after a mint completes."""

    async def on_mint_completed(self, request: MintRequest, receipt: MintReceipt) -> None:
        ...


class MintReporter:
    """POSTs completed-mint metadata to a reporting endpoint."""

    def __init__(
        self,
        report_url: str,
        service_name: str,
        contract_address: str,
        amount: str,
        currency: str,
        network: str,
        chain_id: int,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None
    ) -> None:
        """
        Initialize the reporter.

        Args:
            report_url: Endpoint receiving the JSON report
            service_name: Reported service identifier
            contract_address: Token contract address
            amount: Formatted payment amount, e.g. '1.00'
            currency: Payment currency symbol
            network: Short network name
            chain_id: Chain ID
            timeout: Request timeout in seconds
            client: Shared httpx client (a short-lived one is used per call if omitted)
        """
        self.report_url = report_url
        self.service_name = service_name
        self.contract_address = contract_address
        self.amount = amount
        self.currency = currency
        self.network = network
        self.chain_id = chain_id
        self.timeout = timeout
        self.client = client

        self.reports_sent = 0
        self.reports_failed = 0

    def build_report(self, request: MintRequest, receipt: MintReceipt) -> dict[str, Any]:
        return {
            "paymentId": request.payment_id,
            "mintTxHash": receipt.tx_hash,
            "status": "completed",
            "service": self.service_name,
            "amount": self.amount,
            "currency": self.currency,
            "network": self.network,
            "chainId": self.chain_id,
            "timestamp": int(time.time() * 1000),
            "userAddress": request.user_address,
            "contractAddress": self.contract_address,
            "blockNumber": receipt.block_number,
        }

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self.client is not None:
            return await self.client.post(self.report_url, json=payload, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(self.report_url, json=payload, timeout=self.timeout)

    async def on_mint_completed(self, request: MintRequest, receipt: MintReceipt) -> None:
        """Send the report; never raises."""
        payload = self.build_report(request, receipt)
        logger.debug(f"Reporting mint to {self.report_url}: {json.dumps(payload)}")

        try:
            response = await self._post(payload)
            response.raise_for_status()
            self.reports_sent += 1
            logger.info(f"Reported mint {request.payment_id} ({response.status_code})")
        except httpx.HTTPError as e:
            self.reports_failed += 1
            logger.warning(f"Failed to report mint {request.payment_id}: {e}")
