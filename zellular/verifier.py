from __future__ import annotations

from fractions import Fraction
from typing import Iterable, List, Optional, Union

import bittensor as bt

from zellular.crypto.hashing import finalization_message
from zellular.crypto.pairing import PairingBackend, default_backend
from zellular.registry import OperatorSet, stake_of
from zellular.schemas import FinalizedProof

DEFAULT_THRESHOLD_PERCENT = 67


def _unique(ids: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    for x in ids:
        if x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


def exceeds_nonsigner_budget(
    nonsigner_stake: Fraction,
    total_stake: Fraction,
    threshold_percent: Union[int, float, Fraction],
) -> bool:
    """True when non-signers hold more than ``100 - threshold`` percent of stake."""
    return 100 * nonsigner_stake / total_stake > 100 - Fraction(threshold_percent)


def verify(
    operator_set: OperatorSet,
    message: Union[str, bytes],
    signature: str,
    non_signer_ids: Iterable[str],
    threshold_percent: Union[int, float, Fraction] = DEFAULT_THRESHOLD_PERCENT,
    *,
    backend: Optional[PairingBackend] = None,
) -> bool:
    """
    Check an aggregate signature against the operator set minus ``non_signer_ids``.

    Unknown non-signer ids raise :class:`UnknownOperatorError` before any other
    work. A non-signer set that exceeds the stake budget is rejected with
    ``False`` before any point arithmetic or signature decoding happens, so a
    garbage signature cannot surface an error on that path. A signature that
    does not decode counts as a failed verification.
    """
    nonsigner_stake, nonsigners = stake_of(operator_set, _unique(non_signer_ids))

    if operator_set.total_stake <= 0:
        return False
    if exceeds_nonsigner_budget(nonsigner_stake, operator_set.total_stake, threshold_percent):
        return False

    backend = backend or default_backend()
    public_key = operator_set.aggregate_public_key
    for op in nonsigners:
        public_key = backend.sub(public_key, op.public_key_g2)

    try:
        sig = backend.decode_signature(signature)
    except ValueError as e:
        bt.logging.debug(f"Rejecting undecodable signature: {e}")
        return False

    msg = message.encode("utf-8") if isinstance(message, str) else bytes(message)
    return bool(backend.verify(public_key, msg, sig))


class ThresholdSignatureVerifier:
    """Binds an operator set, a threshold and a curve backend for repeated checks."""

    def __init__(
        self,
        operator_set: OperatorSet,
        *,
        threshold_percent: Union[int, float, Fraction] = DEFAULT_THRESHOLD_PERCENT,
        backend: Optional[PairingBackend] = None,
    ) -> None:
        if not 0 <= Fraction(threshold_percent) <= 100:
            raise ValueError("threshold_percent must be within [0, 100]")
        self.operator_set = operator_set
        self.threshold_percent = threshold_percent
        self.backend = backend or default_backend()

    def verify(self, message: Union[str, bytes], signature: str, non_signer_ids: Iterable[str]) -> bool:
        return verify(
            self.operator_set,
            message,
            signature,
            non_signer_ids,
            self.threshold_percent,
            backend=self.backend,
        )

    def verify_finalized(
        self,
        app_name: str,
        proof: FinalizedProof,
        batch_hash: str,
        chaining_hash: str,
    ) -> bool:
        message = finalization_message(app_name, proof.index, batch_hash, chaining_hash)
        result = self.verify(message, proof.finalization_signature, proof.nonsigners)
        bt.logging.info(f"App: {app_name}, Index: {proof.index}, Verification Result: {result}")
        return result
