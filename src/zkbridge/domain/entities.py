"""Close-channel domain entities: snapshots, on-chain views, proofs and results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .keys import mpt_key_to_hex, parse_amount


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


class StorageEntry(BaseModel):
    """A single (key, value) leaf as stored in a state snapshot."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str = "0"

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        if v is None:
            return "0"
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("value")
    @classmethod
    def check_amount(cls, v: str) -> str:
        """Reject values that are not hex or decimal amounts; the raw string is kept."""
        parse_amount(v)
        return v


class StateSnapshot(BaseModel):
    """Proof-time view of a channel's L2 storage, sealed in a verified proof.

    ``registered_keys`` is the circuit order: the position of a key in this
    list is its proof index.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    registered_keys: list[str] = Field(default_factory=list, alias="registeredKeys")
    storage_entries: list[StorageEntry] = Field(
        default_factory=list, alias="storageEntries"
    )
    pre_allocated_leaves: list[StorageEntry] = Field(
        default_factory=list, alias="preAllocatedLeaves"
    )
    channel_id: Optional[Union[int, str]] = Field(None, alias="channelId")
    state_root: Optional[str] = Field(None, alias="stateRoot")
    contract_address: Optional[str] = Field(None, alias="contractAddress")

    @field_validator(
        "registered_keys", "storage_entries", "pre_allocated_leaves", mode="before"
    )
    @classmethod
    def default_missing_lists(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class ChannelOnChainView(BaseModel):
    """Read-only projection of a channel's contract state at closing time."""

    model_config = ConfigDict(frozen=True)

    channel_id: str
    participants: Optional[list[str]] = None
    pre_allocated_keys: list[str] = Field(default_factory=list)
    tree_size: int
    final_state_root: Optional[str] = None
    target_contract: Optional[str] = None
    leader: Optional[str] = None

    @field_validator("pre_allocated_keys", mode="before")
    @classmethod
    def default_pre_allocated_keys(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class KeyResolutionWarning(BaseModel):
    """A key that was not found in ``registered_keys`` and fell back to index 0."""

    role: Literal["pre_allocated", "participant"]
    position: int
    key: str
    participant: Optional[str] = None

    def describe(self) -> str:
        if self.role == "participant":
            return (
                f"No registeredKey found for participant {self.position} "
                f"({self.participant}) with MPT key {self.key}, using index 0"
            )
        return f"PreAlloc key {self.key} not found in registeredKeys, using 0"


class PermutationResult(BaseModel):
    permutation: list[int]
    final_balances: list[int]
    warnings: list[KeyResolutionWarning] = Field(default_factory=list)


class ProofInput(BaseModel):
    """Padded circuit inputs, both lists exactly ``tree_size`` long."""

    storage_keys: list[str]
    storage_values: list[str]
    tree_size: int

    @model_validator(mode="after")
    def check_lengths(self) -> "ProofInput":
        if len(self.storage_keys) != self.tree_size:
            raise ValueError(
                f"storage_keys must contain exactly {self.tree_size} elements"
            )
        if len(self.storage_values) != self.tree_size:
            raise ValueError(
                f"storage_values must contain exactly {self.tree_size} elements"
            )
        return self


class Groth16Proof(BaseModel):
    """Groth16 proof in the split-limb layout expected by the verifier contract."""

    model_config = ConfigDict(populate_by_name=True)

    p_a: list[int] = Field(..., alias="pA", min_length=4, max_length=4)
    p_b: list[int] = Field(..., alias="pB", min_length=8, max_length=8)
    p_c: list[int] = Field(..., alias="pC", min_length=4, max_length=4)

    @field_validator("p_a", "p_b", "p_c", mode="before")
    @classmethod
    def parse_limbs(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [parse_amount(x) for x in v]
        return v

    def as_contract_struct(self) -> dict[str, list[int]]:
        return {"pA": list(self.p_a), "pB": list(self.p_b), "pC": list(self.p_c)}


class ProofResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    proof: Groth16Proof
    public_signals: list[str] = Field(default_factory=list, alias="publicSignals")

    @field_validator("public_signals", mode="before")
    @classmethod
    def stringify_signals(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [str(x) for x in v]
        return v

    @property
    def merkle_root(self) -> Optional[str]:
        if not self.public_signals:
            return None
        return mpt_key_to_hex(parse_amount(self.public_signals[0]))


class VerifiedProofRef(BaseModel):
    """Listing entry for one verified proof of a channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str
    sequence_number: int = Field(0, alias="sequenceNumber")

    @field_validator("sequence_number", mode="before")
    @classmethod
    def default_sequence_number(cls, v: Any) -> Any:
        return 0 if v is None else v


class ClosePhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    PROVING = "proving"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CloseChannelState(BaseModel):
    """Plain state object describing one close attempt."""

    channel_id: Optional[str] = None
    phase: ClosePhase = ClosePhase.IDLE
    status: str = ""
    error: Optional[str] = None
    failed_phase: Optional[ClosePhase] = None
    tx_hash: Optional[str] = None
    revert_reason: Optional[str] = None
    permutation: list[int] = Field(default_factory=list)
    final_balances: list[int] = Field(default_factory=list)
    warnings: list[KeyResolutionWarning] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in (ClosePhase.SUCCEEDED, ClosePhase.FAILED)

    @property
    def is_busy(self) -> bool:
        return self.phase in (ClosePhase.PROVING, ClosePhase.SUBMITTING)
