"""Curve capabilities and chain hashing used by the verifier."""
