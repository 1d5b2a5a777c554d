from fractions import Fraction

import pytest

from fakes import ABC, toy_proof, toy_sign
from zellular.crypto.hashing import finalization_message
from zellular.errors import UnknownOperatorError
from zellular.registry import build_operator_set
from zellular.verifier import ThresholdSignatureVerifier, exceeds_nonsigner_budget, verify

MSG = "finalize me"


def _sig_without(*nonsigners: str, message: str = MSG) -> str:
    return toy_sign([sk for oid, (sk, _) in ABC.items() if oid not in nonsigners], message)


def test_all_signers_verify(abc_operators, toy_backend):
    assert verify(abc_operators, MSG, _sig_without(), [], 67, backend=toy_backend) is True


def test_one_nonsigner_within_budget_goes_to_signature_check(abc_operators, toy_backend):
    # C holds 30% and 30 <= 100 - 67.
    assert verify(abc_operators, MSG, _sig_without("C"), ["C"], 67, backend=toy_backend) is True
    assert toy_backend.calls["sub"] == 1
    assert toy_backend.calls["verify"] == 1


def test_nonsigners_over_budget_fail_fast_without_crypto(abc_operators, toy_backend):
    # B + C hold 60% > 33%: rejected before the garbage signature is even decoded.
    assert verify(abc_operators, MSG, "definitely not hex", ["B", "C"], 67, backend=toy_backend) is False
    assert toy_backend.crypto_calls() == 0


def test_nonsigner_signature_must_match_declared_nonsigners(abc_operators, toy_backend):
    # Signed by everyone, but C is declared a non-signer: the effective key no longer matches.
    assert verify(abc_operators, MSG, _sig_without(), ["C"], 67, backend=toy_backend) is False


def test_unknown_nonsigner_raises_before_any_work(abc_operators, toy_backend):
    with pytest.raises(UnknownOperatorError) as exc:
        verify(abc_operators, MSG, "00", ["C", "nobody"], 67, backend=toy_backend)
    assert exc.value.operator_id == "nobody"
    assert toy_backend.crypto_calls() == 0


def test_undecodable_signature_within_budget_is_rejected(abc_operators, toy_backend):
    assert verify(abc_operators, MSG, "zz-not-hex", [], 67, backend=toy_backend) is False
    assert toy_backend.calls["verify"] == 0


def test_wrong_message_is_rejected(abc_operators, toy_backend):
    assert verify(abc_operators, "other message", _sig_without(), [], 67, backend=toy_backend) is False


def test_bytes_and_str_messages_are_equivalent(abc_operators, toy_backend):
    sig = _sig_without()
    assert verify(abc_operators, MSG.encode("utf-8"), sig, [], backend=toy_backend) is True


def test_duplicate_nonsigner_ids_count_once(abc_operators, toy_backend):
    assert verify(abc_operators, MSG, _sig_without("C"), ["C", "C"], 67, backend=toy_backend) is True


def test_verification_is_idempotent(abc_operators, toy_backend):
    args = (abc_operators, MSG, _sig_without("B"), ["B"], 67)
    results = {verify(*args, backend=toy_backend) for _ in range(5)}
    assert results == {True}
    assert abc_operators.aggregate_public_key == sum(sk for sk, _ in ABC.values())


def test_budget_boundary_is_inclusive():
    assert exceeds_nonsigner_budget(Fraction(30), Fraction(100), 70) is False
    assert exceeds_nonsigner_budget(Fraction(31), Fraction(100), 70) is True
    assert exceeds_nonsigner_budget(Fraction(0), Fraction(100), 100) is False


def test_zero_total_stake_never_verifies(toy_backend):
    ops = build_operator_set([], backend=toy_backend)
    assert verify(ops, MSG, "00", [], 0, backend=toy_backend) is False


def test_threshold_must_be_a_percentage(abc_operators, toy_backend):
    with pytest.raises(ValueError):
        ThresholdSignatureVerifier(abc_operators, threshold_percent=101, backend=toy_backend)


def test_verify_finalized_signs_the_canonical_message(abc_operators, toy_backend):
    v = ThresholdSignatureVerifier(abc_operators, threshold_percent=67, backend=toy_backend)
    proof = toy_proof("simple_app", 3, "[\"tx\"]", "cafe", nonsigners=["A"])
    # A holds 40% > 33%: over budget.
    assert v.verify_finalized("simple_app", proof, proof.hash, "cafe") is False

    proof = toy_proof("simple_app", 3, "[\"tx\"]", "cafe", nonsigners=["B"])
    assert v.verify_finalized("simple_app", proof, proof.hash, "cafe") is True
    assert v.verify_finalized("simple_app", proof, proof.hash, "beef") is False
    assert v.verify_finalized("other_app", proof, proof.hash, "cafe") is False

    message = finalization_message("simple_app", 3, proof.hash, "cafe")
    assert v.verify(message, proof.finalization_signature, ["B"]) is True
