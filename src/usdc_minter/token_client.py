#!/usr/bin/env python3
"""Token contract client for the USDC minter.

This module wraps the mint contract: signed mintTo submission with receipt
confirmation, plus the read-only counters used by the stats and balance
endpoints. StablecoinClient reads the payment token.
"""

import logging
from typing import TYPE_CHECKING, Any

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import AsyncContract
from web3.exceptions import TransactionNotFound
from web3.types import TxReceipt

from .models import MintReceipt

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class MintSubmissionError(Exception):
    """Raised when a mint transaction cannot be sent, reverts, or is left unconfirmed."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class ContractNotConfiguredError(RuntimeError):
    """Raised when a contract call is attempted without a deployed contract."""


class TokenContractClient:
    """Handles calls to the token mint contract."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        contract_address: str,
        receipt_timeout: int = 120
    ) -> None:
        """
        Initialize the TokenContractClient.

        Args:
            contract_util: Utility holding the (optionally signing) AsyncWeb3 instance
            contract_address: Address of the token contract
            receipt_timeout: Seconds to wait for a mint receipt
        """
        self.contract_util: ContractUtility = contract_util
        self.contract_address: str = Web3.to_checksum_address(contract_address)
        self.receipt_timeout = receipt_timeout

        self.token_abi: list[dict[str, Any]] = self.contract_util.get_contract_abi("X402Token")
        self.contract: AsyncContract = self.contract_util.w3.eth.contract(
            address=self.contract_address,
            abi=self.token_abi
        )

        mode = "signing" if contract_util.can_sign else "read-only"
        logger.info(f"TokenContractClient initialized in {mode} mode for {self.contract_address}")

    async def mint_to(self, recipient: str) -> MintReceipt:
        """
        Submit mintTo(recipient) and wait for confirmation.

        Args:
            recipient: Address receiving the tokens

        Returns:
            MintReceipt with the transaction hash and block number

        Raises:
            MintSubmissionError: If no signer is configured, the transaction
                reverts, or it was broadcast but not confirmed in time
                (``tx_hash`` is set in the last two cases)
            Exception: Any RPC/signing error from web3 before broadcast is propagated unchanged
        """
        if not self.contract_util.can_sign:
            raise MintSubmissionError("No signer configured for mint transactions")

        w3 = self.contract_util.w3
        tx_hash: HexBytes = await self.contract.functions.mintTo(
            Web3.to_checksum_address(recipient)
        ).transact({'from': self.contract_util.account.address})
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Mint transaction sent: {tx_hash_hex}")

        try:
            receipt: TxReceipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            # Broadcast already happened; the transaction may still confirm
            raise MintSubmissionError(
                f"Mint transaction {tx_hash_hex} not confirmed: {e}",
                tx_hash=tx_hash_hex
            ) from e

        return self._check_receipt(receipt, tx_hash_hex)

    async def find_mint_receipt(self, tx_hash: str) -> MintReceipt | None:
        """
        Look up the outcome of an earlier, unconfirmed mint transaction.

        Args:
            tx_hash: Hash of the earlier mintTo transaction

        Returns:
            MintReceipt if it was mined successfully, None if it reverted or
            the node no longer knows it (safe to submit again)

        Raises:
            MintSubmissionError: If the transaction is still pending
        """
        w3 = self.contract_util.w3
        try:
            receipt: TxReceipt = await w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            try:
                await w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                logger.warning(f"Earlier mint transaction {tx_hash} was dropped")
                return None
            raise MintSubmissionError(
                f"Earlier mint transaction {tx_hash} still pending",
                tx_hash=tx_hash
            ) from None

        try:
            return self._check_receipt(receipt, tx_hash)
        except MintSubmissionError as e:
            logger.warning(str(e))
            return None

    @staticmethod
    def _check_receipt(receipt: TxReceipt, tx_hash_hex: str) -> MintReceipt:
        if (status := receipt.get('status', 0)) != 1:
            raise MintSubmissionError(
                f"Mint transaction {tx_hash_hex} reverted (status={status})",
                tx_hash=tx_hash_hex
            )

        logger.info(f"✓ Mint confirmed in block {receipt['blockNumber']}")
        return MintReceipt(tx_hash=tx_hash_hex, block_number=receipt['blockNumber'])

    async def total_mints(self) -> int:
        return await self.contract.functions.totalMints().call()

    async def remaining_mints(self) -> int:
        return await self.contract.functions.remainingMints().call()

    async def balance_of(self, address: str) -> int:
        return await self.contract.functions.balanceOf(Web3.to_checksum_address(address)).call()

    async def mints_per_address(self, address: str) -> int:
        return await self.contract.functions.mintsPerAddress(Web3.to_checksum_address(address)).call()


class StablecoinClient:
    """Read-only view of the payment stablecoin."""

    def __init__(self, contract_util: "ContractUtility", token_address: str) -> None:
        self.token_address: str = Web3.to_checksum_address(token_address)
        self.contract: AsyncContract = contract_util.w3.eth.contract(
            address=self.token_address,
            abi=contract_util.get_contract_abi("ERC20")
        )

    async def balance_of(self, address: str) -> int:
        return await self.contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
