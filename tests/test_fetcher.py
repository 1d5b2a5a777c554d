from __future__ import annotations

import pytest

from fakes import ScriptedNode, ToyChain
from zellular.crypto.hashing import fold, fold_all
from zellular.errors import InvalidSignatureError, NetworkError, ParseError, UnknownOperatorError
from zellular.fetcher import Batch, CancellationToken, ChainedBatchFetcher, ChainState, FetcherState
from zellular.schemas import FinalizedBatches
from zellular.transport import RetryPolicy
from zellular.verifier import ThresholdSignatureVerifier

APP = "simple_app"
NO_WAIT = RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0)


@pytest.fixture
def verifier(abc_operators, toy_backend):
    return ThresholdSignatureVerifier(abc_operators, threshold_percent=67, backend=toy_backend)


def _fetcher(node, verifier, **kwargs) -> ChainedBatchFetcher:
    kwargs.setdefault("retry", NO_WAIT)
    kwargs.setdefault("poll_interval_s", 0.0)
    return ChainedBatchFetcher(node, verifier, **kwargs)


def test_genesis_round_releases_verified_batches(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    node = ScriptedNode([chain.response(0, finalized_at=2)])
    f = _fetcher(node, verifier)

    released = f.next_checkpoint()

    assert released == [Batch("b1", 1), Batch("b2", 2)]
    assert node.polls == [0]
    assert f.checkpoint == ChainState(2, fold_all("", ["b1", "b2"]))
    assert f.checkpoint.chaining_hash == fold(fold("", "b1"), "b2")
    assert f.state is FetcherState.EMITTING


def test_batches_are_held_until_a_later_round_brings_a_proof(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    node = ScriptedNode([
        chain.response(0, upto=1),
        chain.response(1, finalized_at=2),
    ])
    f = _fetcher(node, verifier)

    released = f.next_checkpoint()

    assert node.polls == [0, 1]
    assert released == [Batch("b1", 1), Batch("b2", 2)]
    assert f.checkpoint.index == 2


def test_proof_without_new_batches_releases_the_buffer(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    node = ScriptedNode([
        chain.response(0, upto=2),
        FinalizedBatches(batches=[], finalized=chain.proof(2)),
    ])
    f = _fetcher(node, verifier)

    assert f.next_checkpoint() == [Batch("b1", 1), Batch("b2", 2)]
    assert node.polls == [0, 2]
    assert f.checkpoint == ChainState(2, chain.hashes[1])


def test_proof_for_the_checkpoint_itself_is_not_rechecked(verifier, toy_backend):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    node = ScriptedNode([
        chain.response(0, finalized_at=1),
        FinalizedBatches(batches=[], finalized=chain.proof(1)),
        chain.response(1, finalized_at=2),
    ])
    f = _fetcher(node, verifier)

    assert f.next_checkpoint() == [Batch("b1", 1)]
    verified = toy_backend.calls["verify"]
    assert f.next_checkpoint() == [Batch("b2", 2)]
    assert toy_backend.calls["verify"] == verified + 1
    assert node.polls == [0, 1, 1]


def test_batches_past_the_checkpoint_are_polled_again(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2", "b3")
    node = ScriptedNode([
        chain.response(0, finalized_at=2),
        chain.response(2, finalized_at=3),
    ])
    f = _fetcher(node, verifier)

    assert [b.index for b in f.next_checkpoint()] == [1, 2]
    assert [b.index for b in f.next_checkpoint()] == [3]
    assert node.polls == [0, 2]
    assert f.checkpoint == ChainState(3, chain.hashes[2])


def test_invalid_signature_halts_and_surfaces_once(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    node = ScriptedNode([chain.response(0, finalized_at=2, tamper=True)])
    f = _fetcher(node, verifier)

    with pytest.raises(InvalidSignatureError) as exc:
        f.next_checkpoint()
    assert exc.value.index == 2
    assert f.halted
    assert f.checkpoint == ChainState(0, "")
    assert f.next_checkpoint() is None
    assert node.polls == [0]


def test_reordered_batches_fail_verification(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    resp = chain.response(0, finalized_at=2)
    swapped = FinalizedBatches(batches=["b2", "b1"], finalized=resp.finalized)
    node = ScriptedNode([swapped])
    with pytest.raises(InvalidSignatureError):
        _fetcher(node, verifier).next_checkpoint()


def test_over_budget_nonsigners_halt_the_fetcher(verifier):
    chain = ToyChain(APP)
    chain.append("b1")
    node = ScriptedNode([chain.response(0, finalized_at=1, nonsigners=["B", "C"])])
    with pytest.raises(InvalidSignatureError):
        _fetcher(node, verifier).next_checkpoint()


def test_unknown_nonsigner_halts_the_fetcher(verifier):
    chain = ToyChain(APP)
    chain.append("b1")
    resp = chain.response(0, finalized_at=1)
    resp.finalized.nonsigners.append("mallory")
    f = _fetcher(ScriptedNode([resp]), verifier)
    with pytest.raises(UnknownOperatorError):
        f.next_checkpoint()
    assert f.next_checkpoint() is None


def test_transient_failures_are_retried(verifier):
    chain = ToyChain(APP)
    chain.append("b1")
    node = ScriptedNode([
        NetworkError("timeout"),
        ParseError("no data"),
        chain.response(0, finalized_at=1),
    ])
    f = _fetcher(node, verifier)
    assert f.next_checkpoint() == [Batch("b1", 1)]
    assert node.polls == [0, 0, 0]


def test_retries_are_bounded(verifier):
    node = ScriptedNode([NetworkError("a"), ParseError("b"), NetworkError("c"), FinalizedBatches()])
    f = _fetcher(node, verifier)
    with pytest.raises(NetworkError) as exc:
        f.next_checkpoint()
    assert "3 attempts" in str(exc.value)
    assert len(node.polls) == 3
    assert f.halted
    assert f.next_checkpoint() is None


def test_untrusted_bootstrap_skips_the_first_batch(verifier):
    chain = ToyChain(APP, seed="genesis")
    chain.append("b1", "b2", "b3", "b4", "b5", "b6")
    node = ScriptedNode([chain.response(4, finalized_at=6)])
    f = _fetcher(node, verifier, after=5)

    released = f.next_checkpoint()

    assert node.polls == [4]
    assert released == [Batch("b6", 6)]
    assert f.checkpoint == ChainState(6, fold(chain.hashes[4], "b6"))


def test_bootstrap_waits_for_batches(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2", "b3")
    node = ScriptedNode([
        FinalizedBatches(),
        FinalizedBatches(batches=["b2", "b3"]),
        chain.response(1, finalized_at=3),
    ])
    f = _fetcher(node, verifier, after=2)

    assert f.next_checkpoint() == [Batch("b3", 3)]
    assert node.polls == [1, 1, 1]


def test_bootstrap_can_be_refused(verifier):
    with pytest.raises(ValueError):
        _fetcher(ScriptedNode(), verifier, after=5, allow_untrusted_bootstrap=False)
    # A seed makes it fine, and polling starts right at the seed index.
    chain = ToyChain(APP, seed="s")
    chain.append("b1", "b2", "b3")
    node = ScriptedNode([chain.response(2, finalized_at=3)])
    f = _fetcher(node, verifier, after=2, seed_chaining_hash=chain.hashes[1], allow_untrusted_bootstrap=False)
    assert f.next_checkpoint() == [Batch("b3", 3)]
    assert node.polls == [2]


def test_cancelled_fetcher_does_not_poll(verifier):
    token = CancellationToken()
    token.cancel()
    node = ScriptedNode()
    f = _fetcher(node, verifier, cancel=token)
    assert f.next_checkpoint() is None
    assert node.polls == []
    assert f.checkpoint == ChainState(0, "")


def test_cancel_between_rounds_drops_unverified_batches(verifier):
    chain = ToyChain(APP)
    chain.append("b1", "b2")
    token = CancellationToken()

    def first_round(after):
        # Caller cancels while the first (proof-less) round is in flight.
        token.cancel()
        return chain.response(after, upto=1)

    node = ScriptedNode([first_round, chain.response(1, finalized_at=2)])
    f = _fetcher(node, verifier, cancel=token)

    assert f.next_checkpoint() is None
    assert node.polls == [0]
    assert f.checkpoint == ChainState(0, "")
    assert f.state is FetcherState.IDLE


def test_negative_start_is_rejected(verifier):
    with pytest.raises(ValueError):
        _fetcher(ScriptedNode(), verifier, after=-1)
