from __future__ import annotations

import json
from typing import Iterable

import xxhash

FINALIZED_STATE = "locked"


def chain_hash(text: str) -> str:
    """64-bit xxHash of the UTF-8 text, as 16 lowercase hex chars."""
    return xxhash.xxh64_hexdigest(text.encode("utf-8"))


def fold(chaining_hash: str, batch: str) -> str:
    return chain_hash(chaining_hash + chain_hash(batch))


def fold_all(seed: str, batches: Iterable[str]) -> str:
    h = seed
    for batch in batches:
        h = fold(h, batch)
    return h


def finalization_message(app_name: str, index: int, batch_hash: str, chaining_hash: str) -> str:
    # Field order is part of the signed bytes; do not sort keys.
    payload = {
        "app_name": app_name,
        "state": FINALIZED_STATE,
        "index": int(index),
        "hash": batch_hash,
        "chaining_hash": chaining_hash,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
