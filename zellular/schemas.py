from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


RawInt = Union[int, str]


class OperatorRecord(BaseModel):
    """One operator as returned by the BLS APK registry subgraph."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    operator_id: str = Field(default="", alias="operatorId")
    pubkey_g1_x: RawInt = Field(alias="pubkeyG1_X")
    pubkey_g1_y: RawInt = Field(alias="pubkeyG1_Y")
    # G2 limbs come as [imaginary, real].
    pubkey_g2_x: List[RawInt] = Field(alias="pubkeyG2_X", min_length=2, max_length=2)
    pubkey_g2_y: List[RawInt] = Field(alias="pubkeyG2_Y", min_length=2, max_length=2)
    # Base URL of the operator's sequencer node.
    socket: str = ""
    # Raw on-chain stake (wei-scaled integer).
    stake: RawInt


class FinalizedProof(BaseModel):
    index: int
    hash: str = ""
    chaining_hash: str = ""
    # Hex-encoded aggregate G1 signature over the finalization message.
    finalization_signature: str
    nonsigners: List[str] = Field(default_factory=list)


class FinalizedBatches(BaseModel):
    batches: List[str] = Field(default_factory=list)
    finalized: Optional[FinalizedProof] = None
    # Chaining hash at the first returned batch; only trusted for bootstrap.
    first_chaining_hash: Optional[str] = None


class FinalizedBatchesResponse(BaseModel):
    data: Optional[FinalizedBatches] = None


class LastFinalized(FinalizedProof):
    hash: str
    chaining_hash: str


class LastFinalizedResponse(BaseModel):
    data: Optional[LastFinalized] = None


class OperatorsPayload(BaseModel):
    operators: List[Dict[str, Any]] = Field(default_factory=list)


class OperatorsQueryResponse(BaseModel):
    data: Optional[OperatorsPayload] = None
    errors: Optional[List[Dict[str, Any]]] = None
