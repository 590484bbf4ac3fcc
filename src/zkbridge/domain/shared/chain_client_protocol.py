"""Protocol interface for blockchain read/write implementations.

This protocol defines the contract every chain client must satisfy. It lets the
close-channel services accept any implementation, so they can be tested with
in-memory fakes instead of a live RPC node.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, Type
from types import TracebackType


class ChainClientProtocol(Protocol):
    """Protocol defining the interface for blockchain client implementations.

    Reads are routed to the bridge core contract, writes to the bridge proof
    manager contract. Implementations should provide async methods for:
    - Contract view calls (``getChannelParticipants``, ``getL2MptKey``, ...)
    - Submitting a state-changing call and waiting for its receipt
    - Context manager support for resource cleanup
    """

    async def read(self, function_name: str, args: Sequence[Any]) -> Any:
        """Call a view function on the bridge core contract.

        Args:
            function_name: ABI function name, e.g. ``getChannelLeader``
            args: Positional call arguments

        Returns:
            The decoded return value
        """
        ...

    async def write(self, function_name: str, args: Sequence[Any]) -> str:
        """Send a transaction to the bridge proof manager contract.

        Args:
            function_name: ABI function name, e.g. ``verifyFinalBalancesGroth16``
            args: Positional call arguments

        Returns:
            The transaction hash as a 0x-prefixed hex string
        """
        ...

    async def wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        """Wait until the transaction is mined.

        Args:
            tx_hash: Hash returned by ``write``

        Returns:
            The receipt; ``status`` is 1 on success and 0 on revert
        """
        ...

    async def aclose(self) -> None: ...

    async def __aenter__(self: "ChainClientProtocol") -> "ChainClientProtocol": ...

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None: ...
