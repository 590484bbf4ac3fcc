"""Protocol interface for the Groth16 proof-generation engine.

The engine is opaque to this client: it receives padded storage keys and
values for a tree and returns a proof plus its public signals. Generation can
legitimately take several minutes, so no timeout is imposed here.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ..entities import ProofInput, ProofResult

ProgressCallback = Callable[[str], None]


class ProofEngineProtocol(Protocol):
    async def generate_proof(
        self,
        proof_input: "ProofInput",
        on_progress: Optional[ProgressCallback] = None,
    ) -> "ProofResult":
        """Generate a Groth16 proof for the given circuit inputs.

        Args:
            proof_input: Storage keys/values padded to the tree size
            on_progress: Optional callback receiving human-readable status text

        Returns:
            The proof in contract layout and its public signals
        """
        ...
