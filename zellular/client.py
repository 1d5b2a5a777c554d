"""High level light client: operator snapshot + node access + verified streaming."""

from __future__ import annotations

import json
import random
from fractions import Fraction
from typing import Any, Iterable, List, Optional, Union

import bittensor as bt

from zellular.config import LightClientConfig
from zellular.crypto.pairing import PairingBackend, default_backend
from zellular.directory_client import DEFAULT_SUBGRAPH_URL, OperatorDirectoryClient
from zellular.errors import InvalidSignatureError, ZellularError
from zellular.fetcher import CancellationToken, ChainedBatchFetcher
from zellular.registry import OperatorSet
from zellular.schemas import FinalizedProof, LastFinalized
from zellular.stream import BatchStream
from zellular.transport import NodeClient, RetryPolicy
from zellular.verifier import DEFAULT_THRESHOLD_PERCENT, ThresholdSignatureVerifier


def pick_node_url(operator_set: OperatorSet, *, rng: Optional[random.Random] = None) -> str:
    sockets = operator_set.sockets()
    if not sockets:
        raise ZellularError("no operator advertises a node socket")
    return (rng or random).choice(sockets)


class Zellular:
    def __init__(
        self,
        app_name: str,
        base_url: str,
        operators: OperatorSet,
        *,
        threshold_percent: Union[int, float, Fraction] = DEFAULT_THRESHOLD_PERCENT,
        backend: Optional[PairingBackend] = None,
        timeout_s: float = 5.0,
        retry: Optional[RetryPolicy] = None,
        poll_interval_s: float = 0.5,
        allow_untrusted_bootstrap: bool = True,
        node: Optional[NodeClient] = None,
    ) -> None:
        self.app_name = app_name
        self.operators = operators
        self.node = node or NodeClient(base_url, app_name, timeout_s=timeout_s)
        self.verifier = ThresholdSignatureVerifier(
            operators,
            threshold_percent=threshold_percent,
            backend=backend or default_backend(),
        )
        self.retry = retry or RetryPolicy()
        self.poll_interval_s = poll_interval_s
        self.allow_untrusted_bootstrap = allow_untrusted_bootstrap

    @property
    def base_url(self) -> str:
        return self.node.base_url

    @classmethod
    def from_directory(
        cls,
        app_name: str,
        base_url: Optional[str] = None,
        *,
        directory_url: str = DEFAULT_SUBGRAPH_URL,
        backend: Optional[PairingBackend] = None,
        timeout_s: float = 5.0,
        **kwargs: Any,
    ) -> "Zellular":
        """Load the operator snapshot, then bind to ``base_url`` or a random operator node."""
        backend = backend or default_backend()
        directory = OperatorDirectoryClient(directory_url, timeout_s=max(timeout_s, 10.0))
        operators = directory.load_operator_set(backend=backend)
        if not base_url:
            base_url = pick_node_url(operators)
            bt.logging.info(f"Using operator node {base_url}")
        return cls(app_name, base_url, operators, backend=backend, timeout_s=timeout_s, **kwargs)

    @classmethod
    def from_config(cls, config: LightClientConfig, *, backend: Optional[PairingBackend] = None) -> "Zellular":
        return cls.from_directory(
            config.app_name,
            config.base_url,
            directory_url=config.directory_url,
            backend=backend,
            timeout_s=config.timeout_s,
            threshold_percent=config.threshold_percent,
            retry=config.retry,
            poll_interval_s=config.poll_interval_s,
            allow_untrusted_bootstrap=config.allow_untrusted_bootstrap,
        )

    def verify_signature(self, message: str, signature: str, nonsigners: Iterable[str]) -> bool:
        return self.verifier.verify(message, signature, nonsigners)

    def verify_finalized(self, proof: FinalizedProof, batch_hash: str, chaining_hash: str) -> bool:
        return self.verifier.verify_finalized(self.app_name, proof, batch_hash, chaining_hash)

    def _make_fetcher(
        self,
        after: int,
        seed_chaining_hash: Optional[str],
        token: CancellationToken,
    ) -> ChainedBatchFetcher:
        return ChainedBatchFetcher(
            self.node,
            self.verifier,
            after=after,
            seed_chaining_hash=seed_chaining_hash,
            retry=self.retry,
            poll_interval_s=self.poll_interval_s,
            allow_untrusted_bootstrap=self.allow_untrusted_bootstrap,
            cancel=token,
        )

    def batches(self, after: int = 0, seed_chaining_hash: Optional[str] = None) -> BatchStream:
        """Verified batches with index > ``after``, in order, forever."""
        return BatchStream(self._make_fetcher, after=after, seed_chaining_hash=seed_chaining_hash)

    stream = batches

    def get_last_finalized(self) -> LastFinalized:
        data = self.node.get_last_finalized()
        if not self.verify_finalized(data, data.hash, data.chaining_hash):
            raise InvalidSignatureError(
                f"Invalid signature for {self.app_name} last finalized index {data.index}",
                index=data.index,
            )
        return data

    def send(self, txs: List[Any], *, blocking: bool = False) -> Optional[int]:
        """
        Submit ``txs`` as one batch.

        With ``blocking=True`` this waits until a verified batch equal to
        ``txs`` shows up after the last finalized index seen before submitting
        and returns its index.
        """
        if not blocking:
            self.node.put_batches(txs)
            return None

        last = self.get_last_finalized()
        self.node.put_batches(txs)
        with self.batches(after=last.index, seed_chaining_hash=last.chaining_hash) as stream:
            for payload, index in stream:
                try:
                    decoded = json.loads(payload)
                except ValueError:
                    continue
                if decoded == txs:
                    return index
        return None
