from __future__ import annotations

import os
from typing import Optional

from eth_account import Account
from pydantic import BaseModel, field_validator
from urllib.parse import urlparse
from web3 import Web3


def _validate_url(name: str, v: str, schemes: set[str]) -> str:
    if not v:
        raise ValueError(f"{name} cannot be empty")
    parsed = urlparse(v)
    if parsed.scheme not in schemes:
        allowed = " or ".join(f"{s}://" for s in sorted(schemes))
        raise ValueError(f"{name} must start with {allowed}")
    if not parsed.netloc:
        raise ValueError(f"{name} must include a host")
    return v.rstrip("/")


class Settings(BaseModel):
    artifact_base_url: str
    prover_base_url: str
    rpc_url: str

    bridge_core_address: str
    bridge_proof_manager_address: str

    private_key: Optional[str] = None
    from_address: Optional[str] = None

    artifact_timeout_seconds: float = 30.0
    proof_timeout_seconds: float = 600.0
    receipt_timeout_seconds: float = 300.0

    strict_key_resolution: bool = False
    log_level: str = "INFO"

    @field_validator("artifact_base_url")
    @classmethod
    def validate_artifact_base_url(cls, v: str) -> str:
        return _validate_url("Artifact base URL", v, {"http", "https"})

    @field_validator("prover_base_url")
    @classmethod
    def validate_prover_base_url(cls, v: str) -> str:
        return _validate_url("Prover base URL", v, {"http", "https"})

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        return _validate_url("RPC URL", v, {"http", "https"})

    @field_validator("bridge_core_address", "bridge_proof_manager_address")
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        if not v or not Web3.is_address(v):
            raise ValueError(f"Invalid contract address: {v!r}")
        return Web3.to_checksum_address(v)

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the signing key, when set, is a usable secp256k1 key."""
        if not v:
            return None
        try:
            Account.from_key(v)
        except Exception as e:
            raise ValueError(f"Invalid private key: {e}") from e
        return v

    @field_validator("from_address")
    @classmethod
    def validate_from_address(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not Web3.is_address(v):
            raise ValueError(f"Invalid from address: {v!r}")
        return Web3.to_checksum_address(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


def get_settings() -> Settings:
    artifact_base_url = os.environ.get("ARTIFACT_BASE_URL")
    prover_base_url = os.environ.get("PROVER_BASE_URL")
    rpc_url = os.environ.get("RPC_URL")
    bridge_core_address = os.environ.get("BRIDGE_CORE_ADDRESS")
    bridge_proof_manager_address = os.environ.get("BRIDGE_PROOF_MANAGER_ADDRESS")
    if not (
        artifact_base_url
        and prover_base_url
        and rpc_url
        and bridge_core_address
        and bridge_proof_manager_address
    ):
        raise ValueError(
            "ARTIFACT_BASE_URL, PROVER_BASE_URL, RPC_URL, BRIDGE_CORE_ADDRESS, "
            "and BRIDGE_PROOF_MANAGER_ADDRESS are required"
        )

    strict_str = os.environ.get("STRICT_KEY_RESOLUTION")

    return Settings(
        artifact_base_url=artifact_base_url,
        prover_base_url=prover_base_url,
        rpc_url=rpc_url,
        bridge_core_address=bridge_core_address,
        bridge_proof_manager_address=bridge_proof_manager_address,
        private_key=os.environ.get("PRIVATE_KEY"),
        from_address=os.environ.get("FROM_ADDRESS"),
        artifact_timeout_seconds=float(os.environ.get("ARTIFACT_TIMEOUT_SECONDS", "30")),
        proof_timeout_seconds=float(os.environ.get("PROOF_TIMEOUT_SECONDS", "600")),
        receipt_timeout_seconds=float(os.environ.get("RECEIPT_TIMEOUT_SECONDS", "300")),
        strict_key_resolution=strict_str.lower() == "true"
        if strict_str is not None
        else False,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
