"""Data Transfer Objects for the close-channel application layer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class CloseChannelRequestDTO(BaseModel):
    """A user-initiated request to close a channel."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "channel_id": "0x0000000000000000000000000000000000000000000000000000000000000007",
                "caller_address": "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4",
            }
        }
    )

    channel_id: Optional[str] = None
    caller_address: Optional[str] = None


class SnapshotBalanceDTO(BaseModel):
    """A participant's balance as recorded in the latest verified snapshot."""

    channel_id: str
    address: str
    l2_key: str
    balance: int
