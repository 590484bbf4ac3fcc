"""Unit tests for the HTTP proof engine adapter."""

from __future__ import annotations

import json

import httpx
import pytest

from zkbridge.domain.entities import ProofInput
from zkbridge.domain.errors import ProofGenerationError
from zkbridge.domain.keys import ZERO_KEY
from zkbridge.infrastructure.prover.prover_client import (
    HttpProofEngineClient,
    format_snarkjs_proof,
    get_memory_requirement,
    parse_prover_response,
    split_field_element,
)

BASE_URL = "http://prover.test"


def make_input(tree_size: int = 16) -> ProofInput:
    return ProofInput(
        storage_keys=[ZERO_KEY] * tree_size,
        storage_values=["0"] * tree_size,
        tree_size=tree_size,
    )


CONTRACT_PROOF = {
    "pA": ["1", "2", "3", "4"],
    "pB": ["5", "6", "7", "8", "9", "10", "11", "12"],
    "pC": ["13", "14", "15", "16"],
}


class TestSplitFieldElement:
    """Test split_field_element function."""

    def test_small_value_has_zero_high_limb(self) -> None:
        assert split_field_element("42") == (0, 42)

    def test_high_bits_move_to_first_limb(self) -> None:
        value = (5 << 256) | 7
        assert split_field_element(str(value)) == (5, 7)


class TestFormatSnarkjsProof:
    """Test format_snarkjs_proof function."""

    def test_reorders_g2_coordinates(self) -> None:
        proof = format_snarkjs_proof(
            {
                "pi_a": ["1", "2", "1"],
                "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
                "pi_c": ["7", "8", "1"],
            }
        )
        assert proof.p_a == [0, 1, 0, 2]
        assert proof.p_b == [0, 4, 0, 3, 0, 6, 0, 5]
        assert proof.p_c == [0, 7, 0, 8]

    def test_malformed_raises(self) -> None:
        with pytest.raises(ProofGenerationError, match="Malformed"):
            format_snarkjs_proof({"pi_a": ["1"]})


class TestParseProverResponse:
    """Test parse_prover_response function."""

    def test_contract_layout(self) -> None:
        result = parse_prover_response(
            {"proof": CONTRACT_PROOF, "publicSignals": [255, "2"]}
        )
        assert result.proof.as_contract_struct()["pB"][-1] == 12
        assert result.public_signals == ["255", "2"]
        assert result.merkle_root == "0x" + "0" * 62 + "ff"

    def test_wrong_limb_count_raises(self) -> None:
        with pytest.raises(ProofGenerationError, match="Invalid proof"):
            parse_prover_response({"proof": {**CONTRACT_PROOF, "pA": ["1"]}})

    def test_missing_proof_raises(self) -> None:
        with pytest.raises(ProofGenerationError, match="does not contain a proof"):
            parse_prover_response({"error": "out of memory"})


class TestHttpProofEngineClient:
    """Test HttpProofEngineClient against a mocked prover."""

    @pytest.mark.asyncio
    async def test_posts_circuit_inputs(self) -> None:
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/generate-proof"
            captured.append(json.loads(request.content))
            return httpx.Response(
                200, json={"proof": CONTRACT_PROOF, "publicSignals": ["1"] * 33}
            )

        progress: list[str] = []
        client = HttpProofEngineClient(BASE_URL, transport=httpx.MockTransport(handler))
        async with client:
            result = await client.generate_proof(make_input(), progress.append)

        assert len(result.public_signals) == 33
        assert captured[0]["treeSize"] == 16
        assert len(captured[0]["storage_keys_L2MPT"]) == 16
        assert captured[0]["storage_values"] == ["0"] * 16
        assert progress == [
            "Using 16-leaf circuit",
            "Generating proof...",
            "Proof generated successfully!",
        ]

    @pytest.mark.asyncio
    async def test_large_circuit_reports_memory(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"proof": CONTRACT_PROOF, "publicSignals": ["1"] * 129}
            )

        progress: list[str] = []
        async with HttpProofEngineClient(
            BASE_URL, transport=httpx.MockTransport(handler)
        ) as client:
            await client.generate_proof(make_input(64), progress.append)

        assert any(get_memory_requirement(64) in status for status in progress)

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"details": "witness generation failed"})

        async with HttpProofEngineClient(
            BASE_URL, transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(ProofGenerationError, match="witness generation failed"):
                await client.generate_proof(make_input())
