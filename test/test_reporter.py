#!/usr/bin/env python3
"""Tests for the best-effort MintReporter."""

import json

import httpx
import pytest

from conftest import CONTRACT_ADDRESS, USER_A
from usdc_minter.models import MintReceipt, MintRequest, MintStatus
from usdc_minter.reporter import MintReporter


def completed_request() -> MintRequest:
    request = MintRequest(payment_id="p1", user_address=USER_A, created_at=1000.0)
    request.mark_paid("0xpay", 1001.0)
    request.mark_minting()
    request.mark_completed("0xmint", 9, 1002.0)
    return request


def make_reporter(handler) -> MintReporter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MintReporter(
        report_url="https://report.test/api/report",
        service_name="x402rocks-automatic",
        contract_address=CONTRACT_ADDRESS,
        amount="1.00",
        currency="USDC",
        network="base",
        chain_id=8453,
        client=client,
    )


class TestMintReporter:
    """Tests for MintReporter."""

    @pytest.mark.asyncio
    async def test_posts_report(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200, json={"ok": True})

        reporter = make_reporter(handler)
        request = completed_request()

        await reporter.on_mint_completed(request, MintReceipt("0xmint", 9))

        assert len(received) == 1
        assert str(received[0].url) == "https://report.test/api/report"
        payload = json.loads(received[0].content)
        assert payload["paymentId"] == "p1"
        assert payload["mintTxHash"] == "0xmint"
        assert payload["status"] == MintStatus.COMPLETED.value
        assert payload["service"] == "x402rocks-automatic"
        assert payload["amount"] == "1.00"
        assert payload["currency"] == "USDC"
        assert payload["network"] == "base"
        assert payload["chainId"] == 8453
        assert payload["userAddress"] == USER_A
        assert payload["contractAddress"] == CONTRACT_ADDRESS
        assert payload["blockNumber"] == 9
        assert isinstance(payload["timestamp"], int)
        assert reporter.reports_sent == 1

    @pytest.mark.asyncio
    async def test_http_error_swallowed(self):
        reporter = make_reporter(lambda request: httpx.Response(500))

        await reporter.on_mint_completed(completed_request(), MintReceipt("0xmint", 9))

        assert reporter.reports_failed == 1
        assert reporter.reports_sent == 0

    @pytest.mark.asyncio
    async def test_connection_error_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        reporter = make_reporter(handler)

        await reporter.on_mint_completed(completed_request(), MintReceipt("0xmint", 9))

        assert reporter.reports_failed == 1
