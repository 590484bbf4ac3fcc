"""HTTP adapter for the external Groth16 proof-generation service.

The prover may answer either with a proof already in contract layout
(``pA``/``pB``/``pC``) or with the raw snarkjs output (``pi_a``/``pi_b``/``pi_c``).
Raw proofs are converted here: every BLS12-381 coordinate is split into a
128-bit high limb and a 256-bit low limb, and the G2 coordinates are swapped
into the order the Solidity verifier reads.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type
from types import TracebackType

import httpx
from pydantic import ValidationError

from ...domain.entities import Groth16Proof, ProofInput, ProofResult
from ...domain.errors import ProofGenerationError
from ...domain.keys import parse_amount
from ...domain.shared import ProgressCallback
from ...middleware.timing import log_timing
from ..http.http_client import AsyncHttpClient, error_detail

logger = logging.getLogger(__name__)

_LOW_LIMB_MASK = (1 << 256) - 1

MEMORY_REQUIREMENTS = {
    16: "~512MB RAM",
    32: "~1GB RAM",
    64: "~2GB RAM",
    128: "~4GB RAM",
}


def get_memory_requirement(tree_size: int) -> str:
    return MEMORY_REQUIREMENTS.get(tree_size, MEMORY_REQUIREMENTS[16])


def split_field_element(element: Any) -> tuple[int, int]:
    """Split a field element into (high 128 bits, low 256 bits)."""
    value = parse_amount(element)
    return value >> 256, value & _LOW_LIMB_MASK


def format_snarkjs_proof(raw: Dict[str, Any]) -> Groth16Proof:
    """Convert a snarkjs ``{pi_a, pi_b, pi_c}`` proof to the contract layout."""
    try:
        pi_a, pi_b, pi_c = raw["pi_a"], raw["pi_b"], raw["pi_c"]
        a_x, a_y = pi_a[0], pi_a[1]
        # G2 points are (x1, x0), (y1, y0) in the verifier's encoding
        b_coords = [pi_b[0][1], pi_b[0][0], pi_b[1][1], pi_b[1][0]]
        c_x, c_y = pi_c[0], pi_c[1]
    except (KeyError, IndexError, TypeError) as e:
        raise ProofGenerationError(f"Malformed snarkjs proof: {e}") from e

    p_a = [*split_field_element(a_x), *split_field_element(a_y)]
    p_b = [limb for coord in b_coords for limb in split_field_element(coord)]
    p_c = [*split_field_element(c_x), *split_field_element(c_y)]
    return Groth16Proof(p_a=p_a, p_b=p_b, p_c=p_c)


def parse_prover_response(body: Any) -> ProofResult:
    if not isinstance(body, dict) or "proof" not in body:
        raise ProofGenerationError("Prover response does not contain a proof")

    proof_body = body["proof"]
    try:
        if isinstance(proof_body, dict) and "pi_a" in proof_body:
            proof = format_snarkjs_proof(proof_body)
        else:
            proof = Groth16Proof.model_validate(proof_body)
        return ProofResult(proof=proof, public_signals=body.get("publicSignals") or [])
    except (ValidationError, ValueError) as e:
        raise ProofGenerationError(f"Invalid proof returned by prover: {e}") from e


class HttpProofEngineClient:
    """Asynchronous client for a remote prover exposing ``POST /generate-proof``.

    No timeout is enforced by the assembler itself; the caller picks one here,
    and large circuits can take ten minutes or more.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = 600.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(base_url, timeout=timeout, transport=transport)

    @log_timing("generate_proof")
    async def generate_proof(
        self,
        proof_input: ProofInput,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProofResult:
        tree_size = proof_input.tree_size
        notify = on_progress or (lambda _status: None)

        notify(f"Using {tree_size}-leaf circuit")
        if tree_size >= 64:
            logger.warning(
                "Large circuit: %d-leaf proof generation requires %s",
                tree_size,
                get_memory_requirement(tree_size),
            )
            notify(
                f"Large circuit: {get_memory_requirement(tree_size)} required, "
                "this will take several minutes..."
            )

        notify("Generating proof...")
        payload = {
            "storage_keys_L2MPT": proof_input.storage_keys,
            "storage_values": proof_input.storage_values,
            "treeSize": tree_size,
        }
        try:
            resp = await self._http.post("/generate-proof", json=payload)
        except httpx.HTTPStatusError as e:
            raise ProofGenerationError(
                f"Proof generation failed: {error_detail(e.response)}"
            ) from e
        except httpx.RequestError as e:
            raise ProofGenerationError(f"Could not connect to prover: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise ProofGenerationError(f"Prover response is not JSON: {e}") from e

        result = parse_prover_response(body)
        notify("Proof generated successfully!")
        return result

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "HttpProofEngineClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
