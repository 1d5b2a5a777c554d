"""
Chained-hash batch retrieval.

The fetcher polls a node for finalized batches, folds every batch into the
running chaining hash and only hands batches out once a finalization proof
covering them has been verified against the operator set. Batches of rounds
that carry no proof stay buffered until a later round brings one.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional

import bittensor as bt

from zellular.crypto.hashing import chain_hash, fold
from zellular.errors import InvalidSignatureError, NetworkError, ParseError, ZellularError
from zellular.schemas import FinalizedBatches, FinalizedProof
from zellular.transport import NodeClient, RetryPolicy
from zellular.verifier import ThresholdSignatureVerifier

GENESIS_CHAINING_HASH = ""


class Batch(NamedTuple):
    payload: str
    index: int


@dataclass(frozen=True)
class ChainState:
    index: int
    chaining_hash: str


class FetcherState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    ACCUMULATING = "accumulating"
    CHECKING_FINALIZATION = "checking_finalization"
    EMITTING = "emitting"
    HALTED = "halted"


class CancellationToken:
    """Cooperative cancel flag, checked between polls, folds and verifications."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout_s: float) -> bool:
        """Sleep up to ``timeout_s``; returns True early if cancelled."""
        if timeout_s <= 0:
            return self._event.is_set()
        return self._event.wait(timeout_s)


class ChainedBatchFetcher:
    def __init__(
        self,
        node: NodeClient,
        verifier: ThresholdSignatureVerifier,
        *,
        after: int = 0,
        seed_chaining_hash: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
        poll_interval_s: float = 0.5,
        allow_untrusted_bootstrap: bool = True,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        after = int(after)
        if after < 0:
            raise ValueError("after must be >= 0")
        if seed_chaining_hash is None and after == 0:
            seed_chaining_hash = GENESIS_CHAINING_HASH
        if seed_chaining_hash is None and not allow_untrusted_bootstrap:
            raise ValueError(
                f"starting at index {after} needs a verified seed chaining hash "
                "(untrusted bootstrap is disabled)"
            )

        self.node = node
        self.verifier = verifier
        self.retry = retry or RetryPolicy()
        self.poll_interval_s = max(0.0, float(poll_interval_s))
        self.cancel_token = cancel or CancellationToken()

        self.state = FetcherState.IDLE
        self._bootstrapping = seed_chaining_hash is None
        # Last verified checkpoint. Before bootstrap its hash is unknown.
        self._chain: Optional[ChainState] = (
            None if self._bootstrapping else ChainState(after, seed_chaining_hash)
        )
        # Working (unverified) position, ahead of the checkpoint while accumulating.
        self._index = after if not self._bootstrapping else after - 1
        self._chaining_hash = seed_chaining_hash or ""
        self._pending: List[Batch] = []
        self._error: Optional[ZellularError] = None
        self._error_surfaced = False

        if self._bootstrapping:
            bt.logging.warning(
                f"Starting {node.app_name} at index {after} without a seed chaining hash; "
                "the node-supplied first_chaining_hash will be trusted unverified."
            )

    @property
    def checkpoint(self) -> Optional[ChainState]:
        return self._chain

    @property
    def halted(self) -> bool:
        return self.state is FetcherState.HALTED

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def next_checkpoint(self) -> Optional[List[Batch]]:
        """
        Run the state machine until the next verified checkpoint.

        Returns the batches released by that checkpoint, in index order, or
        ``None`` once cancelled or halted. The halting error itself is raised
        exactly once.
        """
        if self.state is FetcherState.HALTED:
            if self._error is not None and not self._error_surfaced:
                self._error_surfaced = True
                raise self._error
            return None

        try:
            return self._run_until_checkpoint()
        except ZellularError as e:
            self._halt(e)
            self._error_surfaced = True
            raise

    def _halt(self, error: ZellularError) -> None:
        self.state = FetcherState.HALTED
        self._error = error
        self._pending = []
        bt.logging.error(f"Batch fetcher for {self.node.app_name} halted: {error}")

    def _run_until_checkpoint(self) -> Optional[List[Batch]]:
        while True:
            if self.cancel_token.cancelled:
                return self._stop()

            self.state = FetcherState.POLLING
            data = self._poll()
            if data is None:
                return self._stop()

            self.state = FetcherState.ACCUMULATING
            before = self._index
            released = self._accumulate(data)
            if released is not None:
                return released

            if self._index == before and self.poll_interval_s > 0:
                if self.cancel_token.wait(self.poll_interval_s):
                    return self._stop()

    def _stop(self) -> None:
        # Unverified batches are dropped; the checkpoint stays where it was.
        self._pending = []
        if self._chain is not None:
            self._index = self._chain.index
            self._chaining_hash = self._chain.chaining_hash
        self.state = FetcherState.IDLE
        return None

    def _poll(self) -> Optional[FinalizedBatches]:
        last_error: Optional[ZellularError] = None
        for attempt in range(1, self.retry.max_attempts + 1):
            try:
                return self.node.get_finalized_batches(self._index)
            except (NetworkError, ParseError) as e:
                last_error = e
                if attempt == self.retry.max_attempts:
                    break
                delay = self.retry.delay_for(attempt)
                bt.logging.warning(
                    f"poll attempt {attempt}/{self.retry.max_attempts} after={self._index} failed: {e}; "
                    f"retrying in {delay:.2f}s"
                )
                if self.cancel_token.wait(delay):
                    return None
        raise NetworkError(
            f"giving up after {self.retry.max_attempts} attempts polling after={self._index}: {last_error}"
        ) from last_error

    def _accumulate(self, data: FinalizedBatches) -> Optional[List[Batch]]:
        batches = list(data.batches)
        if self._bootstrapping:
            if not batches:
                return None
            if not data.first_chaining_hash:
                bt.logging.warning("bootstrap response carried no first_chaining_hash; polling again")
                return None
            # The first batch is already covered by first_chaining_hash.
            self._chaining_hash = data.first_chaining_hash
            self._index += 1
            self._chain = ChainState(self._index, self._chaining_hash)
            self._bootstrapping = False
            batches = batches[1:]

        finalized = data.finalized
        # A proof can land on batches buffered by earlier proof-less rounds.
        if finalized is not None and self._pending and self._index == finalized.index:
            return self._check_finalization(finalized, self._pending[-1].payload)

        for payload in batches:
            self._index += 1
            self._chaining_hash = fold(self._chaining_hash, payload)
            self._pending.append(Batch(payload, self._index))

            if finalized is not None and self._index == finalized.index:
                return self._check_finalization(finalized, payload)
        return None

    def _check_finalization(self, proof: FinalizedProof, payload: str) -> List[Batch]:
        self.state = FetcherState.CHECKING_FINALIZATION
        ok = self.verifier.verify_finalized(
            self.node.app_name,
            proof,
            chain_hash(payload),
            self._chaining_hash,
        )
        if not ok:
            raise InvalidSignatureError(
                f"Invalid signature for {self.node.app_name} finalization at index {proof.index}",
                index=proof.index,
            )

        self.state = FetcherState.EMITTING
        released, self._pending = self._pending, []
        self._chain = ChainState(self._index, self._chaining_hash)
        bt.logging.debug(
            f"checkpoint {self._chain.index} verified; releasing {len(released)} batches"
        )
        return released
