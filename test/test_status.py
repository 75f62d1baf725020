#!/usr/bin/env python3
"""Tests for the StatusService."""

import pytest

from conftest import USER_A, USER_B
from usdc_minter.ledger import RequestLedger
from usdc_minter.status import StatusService


@pytest.fixture
def ledger(clock):
    return RequestLedger(clock=clock)


@pytest.fixture
def status(ledger):
    return StatusService(ledger, request_ttl=1800)


class TestGetStatus:
    """Lookups by payment id."""

    def test_unknown_payment_id(self, status):
        assert status.get_status("nope") == {"found": False, "error": "Payment ID not found"}

    def test_waiting_request(self, status, ledger, clock):
        payment_id = ledger.create(USER_A)

        record = status.get_status(payment_id)

        assert record["found"] is True
        assert record["status"] == "waiting_for_payment"
        assert record["userAddress"] == USER_A
        assert record["paymentTxHash"] is None
        assert record["timestamp"] == int(clock.now * 1000)
        assert record["expiresAt"] == int((clock.now + 1800) * 1000)
        assert "error" not in record

    def test_completed_request(self, status, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        clock.advance(10)
        request.mark_completed("0xmint", 5, clock.now)

        record = status.get_status(request.payment_id)

        assert record["status"] == "completed"
        assert record["synthetic"] is True
        assert record["paymentTxHash"] == "0xpay"
        assert record["mintTxHash"] == "0xmint"
        assert record["completedAt"] == int(clock.now * 1000)
        assert record["attempts"] == 1

    def test_failed_request_reports_error(self, status, ledger):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        request.mark_failed("execution reverted", retryable=False)

        record = status.get_status(request.payment_id)

        assert record["status"] == "mint_failed"
        assert record["error"] == "execution reverted"
        assert record["retryable"] is False

    def test_aged_waiting_request_reads_expired(self, status, ledger, clock):
        """Reported expired before the sweep physically removes it."""
        payment_id = ledger.create(USER_A)
        clock.advance(1801)

        record = status.get_status(payment_id)

        assert record["status"] == "expired"
        assert record["found"] is True
        assert "message" in record

    def test_aged_in_flight_request_not_expired(self, status, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        clock.advance(5000)

        assert status.get_status(request.payment_id)["status"] == "minting"

    def test_aged_completed_request_reads_expired(self, status, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        request.mark_completed("0xmint", 5, clock.now)
        clock.advance(1801)

        assert status.get_status(request.payment_id)["status"] == "expired"


class TestFindPendingByAddress:
    """Lookups by user address."""

    def test_no_pending(self, status):
        assert status.find_pending_by_address(USER_A) == {"hasPending": False}

    def test_pending(self, status, ledger, clock):
        payment_id = ledger.create(USER_A)
        ledger.create(USER_B)

        result = status.find_pending_by_address(USER_A.upper().replace("0X", "0x"))

        assert result == {
            "hasPending": True,
            "paymentId": payment_id,
            "status": "waiting_for_payment",
            "timestamp": int(clock.now * 1000),
        }

    def test_aged_request_not_pending(self, status, ledger, clock):
        ledger.create(USER_A)
        clock.advance(1801)

        assert status.find_pending_by_address(USER_A) == {"hasPending": False}

    def test_minting_request_is_pending(self, status, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        clock.advance(1801)

        assert status.find_pending_by_address(USER_A)["status"] == "minting"
