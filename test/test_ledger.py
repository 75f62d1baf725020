#!/usr/bin/env python3
"""Tests for the request ledger."""

import pytest

from conftest import USER_A, USER_B
from usdc_minter.ledger import RequestLedger
from usdc_minter.models import MintStatus


@pytest.fixture
def ledger(clock):
    return RequestLedger(clock=clock)


class TestRequestLedger:
    """Tests for RequestLedger."""

    def test_create_returns_distinct_ids(self, ledger):
        """Two requests for one address get two waiting entries."""
        first = ledger.create(USER_A)
        second = ledger.create(USER_A)

        assert first != second
        assert ledger.get(first).status is MintStatus.WAITING_FOR_PAYMENT
        assert ledger.get(second).status is MintStatus.WAITING_FOR_PAYMENT
        assert len(ledger) == 2

    def test_address_normalized(self, ledger):
        payment_id = ledger.create(USER_A.upper().replace("0X", "0x"))
        assert ledger.get(payment_id).user_address == USER_A

    def test_get_unknown(self, ledger):
        assert ledger.get("missing") is None
        with pytest.raises(KeyError):
            ledger["missing"]

    def test_index_by_payment_id(self, ledger):
        payment_id = ledger.create(USER_A)
        assert ledger[payment_id] is ledger.get(payment_id)

    def test_create_paid_is_synthetic(self, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")

        assert request.payment_id.startswith(RequestLedger.SYNTHETIC_PREFIX)
        assert request.synthetic
        assert request.status is MintStatus.PAYMENT_RECEIVED
        assert request.payment_tx_hash == "0xpay"
        assert request.paid_at == clock.now
        assert ledger.get(request.payment_id) is request

    def test_find_active_by_address_skips_terminal(self, ledger):
        done = ledger.create(USER_A)
        ledger.get(done).mark_expired()
        active = ledger.create(USER_A)
        ledger.create(USER_B)

        assert ledger.find_active_by_address(USER_A).payment_id == active

    def test_find_active_by_address_insertion_order(self, ledger):
        first = ledger.create(USER_A)
        ledger.create(USER_A)
        assert ledger.find_active_by_address(USER_A).payment_id == first

    def test_find_active_by_address_max_age(self, ledger, clock):
        ledger.create(USER_A)
        clock.advance(100)
        fresh = ledger.create(USER_A)

        assert ledger.find_active_by_address(USER_A, max_age=50).payment_id == fresh
        assert ledger.find_active_by_address(USER_B) is None

    def test_iter_waiting(self, ledger):
        first = ledger.create(USER_A)
        second = ledger.create(USER_A)
        ledger.get(first).mark_paid("0xpay", 0.0)

        assert [r.payment_id for r in ledger.iter_waiting(USER_A)] == [second]

    def test_sweep_expired_removes_old_requests(self, ledger, clock):
        old = ledger.create(USER_A)
        clock.advance(1000)
        new = ledger.create(USER_B)
        clock.advance(1000)

        removed = ledger.sweep_expired(max_age=1500)

        assert removed == 1
        assert ledger.get(old) is None
        assert ledger.get(new) is not None

    def test_sweep_keeps_in_flight(self, ledger, clock):
        """A captured payment still being minted is never swept."""
        paid = ledger.create_paid(USER_A, "0xpay")
        minting = ledger.create_paid(USER_B, "0xpay2")
        minting.mark_minting()
        clock.advance(5000)

        assert ledger.sweep_expired(max_age=1800) == 0
        assert ledger.get(paid.payment_id) is paid

        assert ledger.sweep_expired(max_age=1800, keep_in_flight=False) == 2
        assert len(ledger) == 0

    def test_sweep_removes_completed(self, ledger, clock):
        request = ledger.create_paid(USER_A, "0xpay")
        request.mark_minting()
        request.mark_completed("0xmint", 1, clock.now)
        clock.advance(2000)

        assert ledger.sweep_expired(max_age=1800) == 1

    def test_iteration_survives_mutation(self, ledger):
        for _ in range(3):
            ledger.create(USER_A)
        for _ in ledger:
            ledger.sweep_expired(max_age=-1, keep_in_flight=False)
        assert len(ledger) == 0

    def test_get_stats(self, ledger):
        ledger.create(USER_A)
        ledger.create_paid(USER_B, "0xpay")

        stats = ledger.get_stats()

        assert stats["waiting_for_payment"] == 1
        assert stats["payment_received"] == 1
        assert stats["completed"] == 0
        assert stats["total"] == 2


def test_default_clock_is_wall_time():
    ledger = RequestLedger()
    payment_id = ledger.create(USER_A)
    assert ledger.get(payment_id).created_at > 1_600_000_000
