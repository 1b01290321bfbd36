import asyncio
import json
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import ProviderConnectionError

from ..errors import ChainError, NetworkUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContractUtility:
    """
    Utility for contract interaction and ABI loading.

    Wraps a single AsyncWeb3 instance. Every RPC call goes through call(), which
    bounds it with the request timeout and turns web3/transport exceptions into
    the typed ChainError family.
    """

    def __init__(self, rpc_url: str, request_timeout: float = 30) -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            request_timeout: Upper bound in seconds for a single RPC call
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))
        self._abi_cache: dict[str, list[dict[str, Any]]] = {}

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        if contract_name in self._abi_cache:
            return self._abi_cache[contract_name]

        contract_path: Path = (
            Path(__file__).parent.parent
            / "contracts"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        self._abi_cache[contract_name] = contract_data["abi"]
        return contract_data["abi"]

    def contract(self, address: str, contract_name: str) -> AsyncContract:
        """Bind an ABI from the contracts folder to an address."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )

    async def call(
        self,
        awaitable: Awaitable[T],
        error_cls: type[ChainError] = ChainError
    ) -> T:
        """Await an RPC call with the request timeout and typed errors.

        Args:
            awaitable: The pending web3 call
            error_cls: Error raised for failures that are not connectivity problems

        Raises:
            NetworkUnavailable: The endpoint could not be reached or timed out
            ChainError: error_cls for any other failure
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except ChainError:
            raise
        except (ProviderConnectionError, TimeoutError, OSError) as e:
            logger.debug(f"RPC call failed at {self.rpc_url}: {type(e).__name__}: {e}")
            raise NetworkUnavailable(f"RPC endpoint unavailable: {e}") from e
        except Exception as e:
            logger.debug(f"RPC call rejected: {type(e).__name__}: {e}")
            raise error_cls(str(e)) from e
