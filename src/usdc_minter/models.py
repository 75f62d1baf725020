#!/usr/bin/env python3
"""Data models for the USDC minter.

This module provides the mint request state machine together with the
immutable event and work-item types that flow between the chain watcher,
the matcher and the mint dispatcher.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MintStatus(str, Enum):
    """Lifecycle states of a mint request."""
    WAITING_FOR_PAYMENT = "waiting_for_payment"
    PAYMENT_RECEIVED = "payment_received"
    MINTING = "minting"
    COMPLETED = "completed"
    MINT_FAILED = "mint_failed"
    EXPIRED = "expired"


# Allowed forward transitions; MINT_FAILED -> MINTING is the retry edge
_TRANSITIONS: dict[MintStatus, frozenset[MintStatus]] = {
    MintStatus.WAITING_FOR_PAYMENT: frozenset({MintStatus.PAYMENT_RECEIVED, MintStatus.EXPIRED}),
    MintStatus.PAYMENT_RECEIVED: frozenset({MintStatus.MINTING}),
    MintStatus.MINTING: frozenset({MintStatus.COMPLETED, MintStatus.MINT_FAILED}),
    MintStatus.MINT_FAILED: frozenset({MintStatus.MINTING}),
    MintStatus.COMPLETED: frozenset(),
    MintStatus.EXPIRED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a mint request would move backwards or overwrite a hash."""


@dataclass(slots=True)
class MintRequest:
    """One user's intent to receive tokens for one payment.

    Mutated only through the transition methods below, which enforce the
    forward-only state machine and the write-once transaction hashes.

    Attributes:
        payment_id: Unique identifier, primary key in the ledger
        user_address: Lower-cased address of the payer/recipient
        created_at: Creation time (Unix seconds)
        status: Current lifecycle state
        synthetic: True when created because payment arrived unannounced
        payment_tx_hash: Hash of the matched stablecoin transfer
        paid_at: Time the payment was matched
        mint_tx_hash: Hash of the successful mint transaction
        mint_block_number: Block the mint was confirmed in
        completed_at: Time the mint was confirmed
        error: Last mint error message
        attempts: Number of mint submissions made
        retryable: False once a failed mint will not be retried again
    """

    payment_id: str
    user_address: str
    created_at: float
    status: MintStatus = MintStatus.WAITING_FOR_PAYMENT
    synthetic: bool = False
    payment_tx_hash: str | None = None
    paid_at: float | None = None
    mint_tx_hash: str | None = None
    mint_block_number: int | None = None
    completed_at: float | None = None
    error: str | None = None
    attempts: int = 0
    retryable: bool = True

    def _transition(self, target: MintStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Request {self.payment_id}: cannot move from "
                f"{self.status.value} to {target.value}"
            )
        self.status = target

    def mark_paid(self, tx_hash: str, now: float) -> None:
        """Record the matched payment and move to payment_received."""
        if self.payment_tx_hash is not None:
            raise InvalidTransitionError(
                f"Request {self.payment_id} already matched to {self.payment_tx_hash}"
            )
        self._transition(MintStatus.PAYMENT_RECEIVED)
        self.payment_tx_hash = tx_hash
        self.paid_at = now

    def mark_minting(self) -> None:
        self._transition(MintStatus.MINTING)
        self.attempts += 1

    def mark_completed(self, mint_tx_hash: str, block_number: int | None, now: float) -> None:
        """Record the confirmed mint. The mint hash is write-once."""
        if self.mint_tx_hash is not None:
            raise InvalidTransitionError(
                f"Request {self.payment_id} already minted in {self.mint_tx_hash}"
            )
        self._transition(MintStatus.COMPLETED)
        self.mint_tx_hash = mint_tx_hash
        self.mint_block_number = block_number
        self.completed_at = now
        self.error = None

    def mark_failed(self, error: str, retryable: bool) -> None:
        self._transition(MintStatus.MINT_FAILED)
        self.error = error
        self.retryable = retryable

    def mark_expired(self) -> None:
        self._transition(MintStatus.EXPIRED)

    @property
    def is_terminal(self) -> bool:
        """True when no further transition will happen on its own."""
        if self.status is MintStatus.MINT_FAILED:
            return not self.retryable
        return self.status in (MintStatus.COMPLETED, MintStatus.EXPIRED)

    @property
    def is_in_flight(self) -> bool:
        """True while a captured payment still awaits a confirmed mint."""
        if self.status is MintStatus.MINT_FAILED:
            return self.retryable
        return self.status in (MintStatus.PAYMENT_RECEIVED, MintStatus.MINTING)

    def age(self, now: float) -> float:
        return now - self.created_at


@dataclass(frozen=True, slots=True)
class TransferEvent:
    """A decoded stablecoin Transfer log.

    Attributes:
        from_address: Lower-cased sender
        to_address: Lower-cased recipient
        value: Amount in base units
        transaction_hash: 0x-prefixed hash of the emitting transaction
        block_number: Block the log was emitted in
        log_index: Index of the log entry in the block
    """

    from_address: str
    to_address: str
    value: int
    transaction_hash: str
    block_number: int
    log_index: int

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"TransferEvent(from={self.from_address[:10]}..., "
            f"value={self.value}, "
            f"tx={self.transaction_hash[:10]}..., "
            f"block={self.block_number})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "log_index": self.log_index
        }


@dataclass(frozen=True, slots=True)
class MintQueueItem:
    """Work item handed from the matcher to the mint dispatcher."""
    payment_id: str
    user_address: str
    payment_tx_hash: str
    attempt: int = 1
    unconfirmed_mint_tx: str | None = None  # earlier broadcast whose outcome is unknown


@dataclass(frozen=True, slots=True)
class MintReceipt:
    """Outcome of a confirmed mintTo transaction."""
    tx_hash: str
    block_number: int
