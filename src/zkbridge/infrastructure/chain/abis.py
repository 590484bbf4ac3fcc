"""Minimal ABIs for the bridge contracts used by the close-channel flow."""

from __future__ import annotations

from typing import Any, Dict, List


def _view(name: str, inputs: List[tuple[str, str]], output_type: str) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t, "internalType": t} for n, t in inputs],
        "outputs": [{"name": "", "type": output_type, "internalType": output_type}],
        "stateMutability": "view",
    }


BRIDGE_CORE_ABI: List[Dict[str, Any]] = [
    _view("getChannelParticipants", [("channelId", "uint256")], "address[]"),
    _view("getChannelTreeSize", [("channelId", "uint256")], "uint256"),
    _view("getChannelFinalStateRoot", [("channelId", "uint256")], "bytes32"),
    _view("getChannelTargetContract", [("channelId", "uint256")], "address"),
    _view("getChannelLeader", [("channelId", "uint256")], "address"),
    _view(
        "getL2MptKey",
        [("channelId", "uint256"), ("participant", "address")],
        "uint256",
    ),
    _view("getPreAllocatedKeys", [("targetContract", "address")], "bytes32[]"),
]

BRIDGE_PROOF_MANAGER_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "verifyFinalBalancesGroth16",
        "inputs": [
            {"name": "channelId", "type": "uint256", "internalType": "uint256"},
            {"name": "finalBalances", "type": "uint256[]", "internalType": "uint256[]"},
            {"name": "permutation", "type": "uint256[]", "internalType": "uint256[]"},
            {
                "name": "groth16Proof",
                "type": "tuple",
                "internalType": "struct BridgeProofManager.ChannelFinalizationProof",
                "components": [
                    {"name": "pA", "type": "uint256[4]", "internalType": "uint256[4]"},
                    {"name": "pB", "type": "uint256[8]", "internalType": "uint256[8]"},
                    {"name": "pC", "type": "uint256[4]", "internalType": "uint256[4]"},
                ],
            },
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
]


def function_inputs(abi: List[Dict[str, Any]], name: str) -> List[Dict[str, Any]]:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == name:
            return list(entry["inputs"])
    raise KeyError(f"Function {name!r} not found in ABI")
