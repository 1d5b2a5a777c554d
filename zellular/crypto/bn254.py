"""
BN254 (alt_bn128) backend built on ``py_ecc.optimized_bn128``.

Operators hold G2 public keys and sign in G1, so an aggregate signature is a
single G1 point checked with ``e(G2, sig) == e(pk, H(m))``.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable, List, Tuple

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    G2,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_COORD_BYTES = 32


def _check_field_element(value: int, *, label: str) -> int:
    v = int(value)
    if v < 0 or v >= field_modulus:
        raise ValueError(f"{label} out of field range")
    return v


def hash_to_g1(message: bytes):
    """Try-and-increment map of ``message`` onto G1 (cofactor 1, so any curve point is in the group)."""
    counter = 0
    while True:
        digest = hashlib.sha256(counter.to_bytes(4, "big") + message).digest()
        x = int.from_bytes(digest, "big") % field_modulus
        rhs = (pow(x, 3, field_modulus) + 3) % field_modulus
        # field_modulus % 4 == 3, so a square root is rhs^((p+1)/4) when one exists.
        y = pow(rhs, (field_modulus + 1) // 4, field_modulus)
        if (y * y) % field_modulus == rhs:
            return (FQ(x), FQ(y), FQ.one())
        counter += 1


class Bn254Backend:
    def identity(self):
        return Z2

    def add(self, a, b_):
        return add(a, b_)

    def sub(self, a, b_):
        return add(a, neg(b_))

    def g1_point(self, x: int, y: int):
        pt = (
            FQ(_check_field_element(x, label="G1 x")),
            FQ(_check_field_element(y, label="G1 y")),
            FQ.one(),
        )
        if not is_on_curve(pt, b):
            raise ValueError("G1 point is not on the curve")
        return pt

    def g2_point(self, x: Tuple[int, int], y: Tuple[int, int]):
        x_re, x_im = (_check_field_element(v, label="G2 x") for v in x)
        y_re, y_im = (_check_field_element(v, label="G2 y") for v in y)
        pt = (FQ2([x_re, x_im]), FQ2([y_re, y_im]), FQ2.one())
        if not is_on_curve(pt, b2):
            raise ValueError("G2 point is not on the twist curve")
        if not is_inf(multiply(pt, curve_order)):
            raise ValueError("G2 point is not in the prime-order subgroup")
        return pt

    def decode_signature(self, raw: str):
        s = (raw or "").strip()
        if s.lower().startswith("0x"):
            s = s[2:]
        if len(s) != 4 * _COORD_BYTES or not _HEX_RE.fullmatch(s):
            raise ValueError("signature must be 64 bytes of hex")
        data = bytes.fromhex(s)
        x = int.from_bytes(data[:_COORD_BYTES], "big")
        y = int.from_bytes(data[_COORD_BYTES:], "big")
        if x == 0 and y == 0:
            raise ValueError("signature is the point at infinity")
        return self.g1_point(x, y)

    def verify(self, public_key, message: bytes, signature) -> bool:
        return pairing(G2, signature) == pairing(public_key, hash_to_g1(message))


# Signing-side helpers, used by the mock node and tests.


def secret_to_public_g2(secret_key: int):
    return multiply(G2, int(secret_key) % curve_order)


def sign(secret_key: int, message: bytes):
    return multiply(hash_to_g1(message), int(secret_key) % curve_order)


def aggregate_signatures(signatures: Iterable) -> object:
    acc = Z1
    for sig in signatures:
        acc = add(acc, sig)
    return acc


def encode_signature(point) -> str:
    if is_inf(point):
        return "00" * (2 * _COORD_BYTES)
    x, y = normalize(point)
    return (int(x).to_bytes(_COORD_BYTES, "big") + int(y).to_bytes(_COORD_BYTES, "big")).hex()


def g2_to_record_coordinates(point) -> Tuple[List[str], List[str]]:
    """Affine G2 coordinates in the directory's ``[imaginary, real]`` limb order."""
    x, y = normalize(point)
    return (
        [str(int(x.coeffs[1])), str(int(x.coeffs[0]))],
        [str(int(y.coeffs[1])), str(int(y.coeffs[0]))],
    )


def g1_to_record_coordinates(point) -> Tuple[str, str]:
    x, y = normalize(point)
    return str(int(x)), str(int(y))
