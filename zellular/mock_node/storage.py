from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from py_ecc.optimized_bn128 import G1, multiply

from zellular.crypto.bn254 import (
    aggregate_signatures,
    encode_signature,
    g1_to_record_coordinates,
    g2_to_record_coordinates,
    secret_to_public_g2,
    sign,
)
from zellular.crypto.hashing import chain_hash, finalization_message, fold
from zellular.registry import STAKE_SCALE


@dataclass(frozen=True)
class MockOperator:
    id: str
    secret_key: int
    # Raw, wei-scaled stake as the registry subgraph reports it.
    stake: int
    socket: str = ""

    def record(self) -> Dict[str, Any]:
        g1_x, g1_y = g1_to_record_coordinates(multiply(G1, self.secret_key))
        g2_x, g2_y = g2_to_record_coordinates(secret_to_public_g2(self.secret_key))
        return {
            "id": self.id,
            "operatorId": f"0x{self.secret_key:064x}",
            "pubkeyG1_X": g1_x,
            "pubkeyG1_Y": g1_y,
            "pubkeyG2_X": g2_x,
            "pubkeyG2_Y": g2_y,
            "socket": self.socket,
            "stake": str(self.stake),
        }


class InMemorySequencer:
    """
    A single-app sequencer that signs its own finalizations.

    Every ``finalize_every`` submitted batches the latest index is finalized
    with an aggregate signature from all operators except ``nonsigners``.
    """

    def __init__(
        self,
        app_name: str,
        operators: Sequence[MockOperator],
        *,
        nonsigners: Iterable[str] = (),
        finalize_every: int = 1,
    ) -> None:
        self.app_name = app_name
        self.operators = list(operators)
        self.nonsigners = list(nonsigners)
        self.finalize_every = max(1, int(finalize_every))
        # When False the finalized endpoint answers {"data": null}.
        self.available = True
        # When True signatures are made over a wrong chaining hash.
        self.corrupt_signatures = False

        self._lock = threading.Lock()
        self._batches: List[str] = []
        self._chaining: List[str] = []
        self._finalized: List[Dict[str, Any]] = []
        self._records: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def with_operators(
        cls,
        app_name: str,
        stakes: Dict[str, int],
        *,
        socket: str = "",
        **kwargs: Any,
    ) -> "InMemorySequencer":
        """Operators get secret keys 1, 2, 3... in ``stakes`` order; stakes are whole units."""
        ops = [
            MockOperator(id=oid, secret_key=i + 1, stake=int(units) * STAKE_SCALE, socket=socket)
            for i, (oid, units) in enumerate(stakes.items())
        ]
        return cls(app_name, ops, **kwargs)

    def operator_records(self) -> List[Dict[str, Any]]:
        if self._records is None:
            self._records = [op.record() for op in self.operators]
        return list(self._records)

    def submit(self, txs: Any) -> int:
        payload = json.dumps(txs)
        with self._lock:
            prev = self._chaining[-1] if self._chaining else ""
            self._batches.append(payload)
            self._chaining.append(fold(prev, payload))
            index = len(self._batches)
            if index % self.finalize_every == 0:
                self._finalized.append(self._finalize(index))
            return index

    def finalize_now(self) -> Optional[int]:
        """Finalize the latest index regardless of the cadence."""
        with self._lock:
            index = len(self._batches)
            if index == 0 or (self._finalized and self._finalized[-1]["index"] == index):
                return None
            self._finalized.append(self._finalize(index))
            return index

    def _finalize(self, index: int) -> Dict[str, Any]:
        batch_hash = chain_hash(self._batches[index - 1])
        chaining_hash = self._chaining[index - 1]
        signed_chaining = chain_hash(chaining_hash) if self.corrupt_signatures else chaining_hash
        message = finalization_message(self.app_name, index, batch_hash, signed_chaining).encode("utf-8")

        excluded = set(self.nonsigners)
        sig = aggregate_signatures(
            sign(op.secret_key, message) for op in self.operators if op.id not in excluded
        )
        return {
            "index": index,
            "hash": batch_hash,
            "chaining_hash": chaining_hash,
            "finalization_signature": encode_signature(sig),
            "nonsigners": list(self.nonsigners),
        }

    def finalized_after(self, after: int) -> Optional[Dict[str, Any]]:
        if not self.available:
            return None
        after = max(0, int(after))
        with self._lock:
            batches = self._batches[after:]
            finalized = self._finalized[-1] if self._finalized else None
            if finalized is not None and finalized["index"] < after:
                finalized = None
            first = self._chaining[after] if after < len(self._chaining) else None
        return {"batches": batches, "finalized": finalized, "first_chaining_hash": first}

    def last_finalized(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return dict(self._finalized[-1]) if self._finalized else None
