#!/usr/bin/env python3
"""Tests for ContractUtility."""

import asyncio

import pytest
from web3.exceptions import ContractLogicError, ProviderConnectionError

from spin_wheel.errors import ChainError, NetworkUnavailable, SubmissionRejected
from spin_wheel.utils.contract_utility import ContractUtility

from conftest import GAME_ADDRESS, checksum


async def returning(value):
    return value


async def raising(error):
    raise error


@pytest.fixture
def utility():
    return ContractUtility("https://sepolia-rollup.arbitrum.io/rpc", request_timeout=1)


class TestContractUtility:
    """Tests for ABI loading and RPC error mapping."""

    def test_requires_rpc_url(self):
        with pytest.raises(ValueError, match="RPC URL is required"):
            ContractUtility("")

    def test_get_wheel_game_abi(self, utility):
        abi = utility.get_contract_abi("WheelGame")
        names = {entry["name"] for entry in abi}

        assert {"spin", "claimRewards", "getPendingRewards", "SpinResult"} <= names

    def test_get_erc20_abi(self, utility):
        abi = utility.get_contract_abi("ERC20")
        balance_of = next(entry for entry in abi if entry["name"] == "balanceOf")

        assert balance_of["stateMutability"] == "view"
        assert balance_of["outputs"][0]["type"] == "uint256"

    def test_abi_is_cached(self, utility):
        assert utility.get_contract_abi("ERC20") is utility.get_contract_abi("ERC20")

    def test_missing_abi(self, utility):
        with pytest.raises(FileNotFoundError):
            utility.get_contract_abi("DoesNotExist")

    def test_contract_binds_checksummed_address(self, utility):
        contract = utility.contract(GAME_ADDRESS, "WheelGame")

        assert contract.address == checksum(GAME_ADDRESS)
        assert hasattr(contract.functions, "spin")

    @pytest.mark.asyncio
    async def test_call_returns_value(self, utility):
        assert await utility.call(returning(42)) == 42

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ProviderConnectionError("connection refused"),
        ConnectionRefusedError("refused"),
        OSError("network unreachable"),
    ])
    async def test_connectivity_errors_are_network_unavailable(self, utility, error):
        with pytest.raises(NetworkUnavailable):
            await utility.call(raising(error), SubmissionRejected)

    @pytest.mark.asyncio
    async def test_timeout_is_network_unavailable(self, utility):
        utility.request_timeout = 0.01

        with pytest.raises(NetworkUnavailable):
            await utility.call(asyncio.sleep(1))

    @pytest.mark.asyncio
    async def test_other_errors_use_given_class(self, utility):
        with pytest.raises(SubmissionRejected, match="insufficient funds"):
            await utility.call(raising(ValueError("insufficient funds for gas")), SubmissionRejected)

    @pytest.mark.asyncio
    async def test_other_errors_default_to_chain_error(self, utility):
        with pytest.raises(ChainError) as exc_info:
            await utility.call(raising(ContractLogicError("execution reverted")))

        assert type(exc_info.value) is ChainError
        assert isinstance(exc_info.value.__cause__, ContractLogicError)

    @pytest.mark.asyncio
    async def test_chain_errors_pass_through(self, utility):
        with pytest.raises(NetworkUnavailable):
            await utility.call(raising(NetworkUnavailable("down")), SubmissionRejected)
