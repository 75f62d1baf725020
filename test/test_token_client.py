#!/usr/bin/env python3
"""Tests for TokenContractClient and ContractUtility."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from conftest import CONTRACT_ADDRESS, PRIVATE_KEY, USER_A
from usdc_minter.config import BASE_USDC_ADDRESS
from usdc_minter.models import MintReceipt
from usdc_minter.token_client import MintSubmissionError, StablecoinClient, TokenContractClient
from usdc_minter.utils.contract_utility import ContractUtility

TX_BYTES = b'\x12' * 32
TX_HEX = "0x" + "12" * 32


@pytest.fixture
def contract_util():
    util = MagicMock()
    util.can_sign = True
    util.account.address = Account.from_key(PRIVATE_KEY).address
    util.get_contract_abi.return_value = [{"type": "function", "name": "mintTo"}]
    util.w3.eth.wait_for_transaction_receipt = AsyncMock(return_value={'status': 1, 'blockNumber': 55})
    return util


@pytest.fixture
def client(contract_util):
    client = TokenContractClient(contract_util, CONTRACT_ADDRESS, receipt_timeout=5)
    client.contract = MagicMock()
    client.contract.functions.mintTo.return_value.transact = AsyncMock(return_value=TX_BYTES)
    return client


class TestTokenContractClient:
    """Tests for TokenContractClient."""

    def test_loads_token_abi(self, contract_util):
        TokenContractClient(contract_util, CONTRACT_ADDRESS)

        contract_util.get_contract_abi.assert_called_once_with("X402Token")
        contract_util.w3.eth.contract.assert_called_once()

    @pytest.mark.asyncio
    async def test_mint_to(self, client, contract_util):
        receipt = await client.mint_to(USER_A)

        assert receipt == MintReceipt(tx_hash="0x" + "12" * 32, block_number=55)
        client.contract.functions.mintTo.assert_called_once_with(
            Web3.to_checksum_address(USER_A)
        )
        client.contract.functions.mintTo.return_value.transact.assert_awaited_once_with(
            {'from': contract_util.account.address}
        )
        contract_util.w3.eth.wait_for_transaction_receipt.assert_awaited_once_with(TX_BYTES, timeout=5)

    @pytest.mark.asyncio
    async def test_reverted_mint_raises(self, client, contract_util):
        contract_util.w3.eth.wait_for_transaction_receipt.return_value = {'status': 0, 'blockNumber': 56}

        with pytest.raises(MintSubmissionError, match="reverted") as exc_info:
            await client.mint_to(USER_A)

        assert exc_info.value.tx_hash == "0x" + "12" * 32

    @pytest.mark.asyncio
    async def test_mint_without_signer(self, client, contract_util):
        contract_util.can_sign = False

        with pytest.raises(MintSubmissionError, match="No signer"):
            await client.mint_to(USER_A)
        client.contract.functions.mintTo.assert_not_called()

    @pytest.mark.asyncio
    async def test_rpc_error_propagates(self, client):
        client.contract.functions.mintTo.return_value.transact.side_effect = ConnectionError("rpc down")

        with pytest.raises(ConnectionError):
            await client.mint_to(USER_A)

    @pytest.mark.asyncio
    async def test_read_calls(self, client):
        functions = client.contract.functions
        functions.totalMints.return_value.call = AsyncMock(return_value=12)
        functions.remainingMints.return_value.call = AsyncMock(return_value=39_988)
        functions.balanceOf.return_value.call = AsyncMock(return_value=50_000 * 10 ** 18)
        functions.mintsPerAddress.return_value.call = AsyncMock(return_value=1)

        assert await client.total_mints() == 12
        assert await client.remaining_mints() == 39_988
        assert await client.balance_of(USER_A) == 50_000 * 10 ** 18
        assert await client.mints_per_address(USER_A) == 1

    @pytest.mark.asyncio
    async def test_unconfirmed_mint_keeps_hash(self, client, contract_util):
        contract_util.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("timed out")

        with pytest.raises(MintSubmissionError, match="not confirmed") as exc_info:
            await client.mint_to(USER_A)

        assert exc_info.value.tx_hash == TX_HEX


class TestFindMintReceipt:
    """Tests for TokenContractClient.find_mint_receipt."""

    @pytest.mark.asyncio
    async def test_confirmed(self, client, contract_util):
        contract_util.w3.eth.get_transaction_receipt = AsyncMock(return_value={'status': 1, 'blockNumber': 60})

        assert await client.find_mint_receipt(TX_HEX) == MintReceipt(tx_hash=TX_HEX, block_number=60)

    @pytest.mark.asyncio
    async def test_reverted_is_safe_to_resubmit(self, client, contract_util):
        contract_util.w3.eth.get_transaction_receipt = AsyncMock(return_value={'status': 0, 'blockNumber': 60})

        assert await client.find_mint_receipt(TX_HEX) is None

    @pytest.mark.asyncio
    async def test_dropped_is_safe_to_resubmit(self, client, contract_util):
        contract_util.w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("no receipt"))
        contract_util.w3.eth.get_transaction = AsyncMock(side_effect=TransactionNotFound("unknown"))

        assert await client.find_mint_receipt(TX_HEX) is None

    @pytest.mark.asyncio
    async def test_still_pending_raises(self, client, contract_util):
        contract_util.w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("no receipt"))
        contract_util.w3.eth.get_transaction = AsyncMock(return_value={'hash': TX_BYTES})

        with pytest.raises(MintSubmissionError, match="still pending") as exc_info:
            await client.find_mint_receipt(TX_HEX)

        assert exc_info.value.tx_hash == TX_HEX


class TestStablecoinClient:
    """Tests for StablecoinClient."""

    @pytest.mark.asyncio
    async def test_balance_of(self, contract_util):
        stablecoin = StablecoinClient(contract_util, BASE_USDC_ADDRESS)
        stablecoin.contract = MagicMock()
        stablecoin.contract.functions.balanceOf.return_value.call = AsyncMock(return_value=3_000_000)

        assert await stablecoin.balance_of(USER_A) == 3_000_000
        contract_util.get_contract_abi.assert_called_with("ERC20")
        stablecoin.contract.functions.balanceOf.assert_called_once_with(Web3.to_checksum_address(USER_A))


class TestContractUtility:
    """Tests for ContractUtility."""

    def test_read_only_mode(self):
        utility = ContractUtility("https://rpc.test")

        assert utility.can_sign is False
        assert utility.account is None

    def test_signing_mode(self):
        utility = ContractUtility("https://rpc.test", secret=PRIVATE_KEY)

        assert utility.can_sign is True
        assert utility.account.address == Account.from_key(PRIVATE_KEY).address
        assert utility.w3.eth.default_account == utility.account.address

    def test_no_rpc_url(self):
        with pytest.raises(ValueError, match="RPC URL is required"):
            ContractUtility("")

    @pytest.mark.parametrize("name,member", [
        ("X402Token", "mintTo"),
        ("X402Token", "TokensMinted"),
        ("ERC20", "Transfer"),
    ])
    def test_get_contract_abi(self, name, member):
        abi = ContractUtility.get_contract_abi(name)
        assert member in {entry.get("name") for entry in abi}

    def test_get_contract_abi_missing(self):
        with pytest.raises(FileNotFoundError):
            ContractUtility.get_contract_abi("Missing")
