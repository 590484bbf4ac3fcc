from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Type
from types import TracebackType

from eth_account import Account
from web3 import AsyncWeb3

from ...domain.errors import WalletNotConnectedError
from ...domain.keys import parse_amount
from .abis import BRIDGE_CORE_ABI, BRIDGE_PROOF_MANAGER_ABI, function_inputs

logger = logging.getLogger(__name__)


def _coerce_arg(abi_type: str, value: Any) -> Any:
    """Accept 0x-hex identifiers for integer slots and ints for bytes32 slots."""
    if abi_type.startswith("uint") and not abi_type.endswith("]"):
        if isinstance(value, str):
            return parse_amount(value)
        return value
    if abi_type == "bytes32" and isinstance(value, int):
        return value.to_bytes(32, "big")
    if abi_type == "address" and isinstance(value, str):
        return AsyncWeb3.to_checksum_address(value)
    return value


def _coerce_args(inputs: List[Dict[str, Any]], args: Sequence[Any]) -> List[Any]:
    if len(inputs) != len(args):
        raise ValueError(f"Expected {len(inputs)} arguments, got {len(args)}")
    return [_coerce_arg(spec["type"], value) for spec, value in zip(inputs, args)]


def _to_plain(value: Any) -> Any:
    """Convert web3 return values into plain Python: bytes become 0x-hex strings."""
    if isinstance(value, (bytes, bytearray)):
        return AsyncWeb3.to_hex(bytes(value))
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


class Web3ChainClient:
    """Chain client backed by ``web3.AsyncWeb3``.

    Reads go to the bridge core contract, writes to the bridge proof manager.
    With a private key configured, transactions are signed locally with
    ``eth_account``; otherwise they are sent from ``from_address`` and signed by
    the node's wallet.
    """

    def __init__(
        self,
        rpc_url: str,
        bridge_core_address: str,
        bridge_proof_manager_address: str,
        *,
        private_key: Optional[str] = None,
        from_address: Optional[str] = None,
        receipt_timeout: float = 300.0,
    ) -> None:
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._core = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(bridge_core_address),
            abi=BRIDGE_CORE_ABI,
        )
        self._proof_manager = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(bridge_proof_manager_address),
            abi=BRIDGE_PROOF_MANAGER_ABI,
        )
        self._account = Account.from_key(private_key) if private_key else None
        if self._account is not None:
            self._from_address: Optional[str] = self._account.address
        elif from_address:
            self._from_address = AsyncWeb3.to_checksum_address(from_address)
        else:
            self._from_address = None
        self._receipt_timeout = receipt_timeout

    @property
    def address(self) -> Optional[str]:
        """The connected account, if any."""
        return self._from_address

    async def read(self, function_name: str, args: Sequence[Any]) -> Any:
        inputs = function_inputs(BRIDGE_CORE_ABI, function_name)
        fn = getattr(self._core.functions, function_name)
        result = await fn(*_coerce_args(inputs, args)).call()
        return _to_plain(result)

    async def write(self, function_name: str, args: Sequence[Any]) -> str:
        if self._from_address is None:
            raise WalletNotConnectedError(
                "No wallet configured: set PRIVATE_KEY or FROM_ADDRESS"
            )

        inputs = function_inputs(BRIDGE_PROOF_MANAGER_ABI, function_name)
        call = getattr(self._proof_manager.functions, function_name)(
            *_coerce_args(inputs, args)
        )

        if self._account is None:
            tx_hash = await call.transact({"from": self._from_address})
        else:
            nonce = await self._w3.eth.get_transaction_count(self._from_address)
            tx = await call.build_transaction(
                {
                    "from": self._from_address,
                    "nonce": nonce,
                    "chainId": await self._w3.eth.chain_id,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_hash_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info("Submitted %s transaction %s", function_name, tx_hash_hex)
        return tx_hash_hex

    async def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        receipt = await self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._receipt_timeout
        )
        return dict(receipt)

    async def aclose(self) -> None:
        await self._w3.provider.disconnect()

    async def __aenter__(self) -> "Web3ChainClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
