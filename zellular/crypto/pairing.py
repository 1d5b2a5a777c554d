from __future__ import annotations

from typing import Any, Protocol, Tuple


Point = Any


class PairingBackend(Protocol):
    """
    The few curve operations the verifier needs.

    Keeping point arithmetic behind this seam lets the registry and the
    threshold check run unchanged against any pairing library (and against a
    toy group in tests).
    """

    def identity(self) -> Point: ...

    def add(self, a: Point, b: Point) -> Point: ...

    def sub(self, a: Point, b: Point) -> Point: ...

    def g1_point(self, x: int, y: int) -> Point:
        """Build a validated G1 point; raise ValueError when invalid."""
        ...

    def g2_point(self, x: Tuple[int, int], y: Tuple[int, int]) -> Point:
        """Build a validated G2 point from (real, imaginary) limbs; raise ValueError when invalid."""
        ...

    def decode_signature(self, raw: str) -> Point:
        """Decode a wire signature; raise ValueError when malformed."""
        ...

    def verify(self, public_key: Point, message: bytes, signature: Point) -> bool: ...


_default_backend: PairingBackend | None = None


def default_backend() -> PairingBackend:
    global _default_backend
    if _default_backend is None:
        from zellular.crypto.bn254 import Bn254Backend

        _default_backend = Bn254Backend()
    return _default_backend
