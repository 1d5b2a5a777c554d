"""Operator registry snapshot with a precomputed aggregate public key."""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from zellular.crypto.pairing import PairingBackend, Point, default_backend
from zellular.errors import RegistryError, RegistryErrorKind, UnknownOperatorError
from zellular.schemas import OperatorRecord

STAKE_SCALE = 10**18


@dataclass(frozen=True)
class Operator:
    id: str
    operator_id: str
    stake: Fraction
    public_key_g1: Point = field(repr=False)
    public_key_g2: Point = field(repr=False)
    socket: str = ""


@dataclass(frozen=True)
class OperatorSet:
    operators: Mapping[str, Operator]
    aggregate_public_key: Point = field(repr=False)
    total_stake: Fraction

    def __getitem__(self, operator_id: str) -> Operator:
        try:
            return self.operators[operator_id]
        except KeyError:
            raise UnknownOperatorError(operator_id) from None

    def __contains__(self, operator_id: object) -> bool:
        return operator_id in self.operators

    def __iter__(self) -> Iterator[Operator]:
        return iter(self.operators.values())

    def __len__(self) -> int:
        return len(self.operators)

    def sockets(self) -> List[str]:
        return [op.socket for op in self.operators.values() if op.socket]


def _malformed(operator_id: Optional[str], message: str) -> RegistryError:
    return RegistryError(RegistryErrorKind.MALFORMED_KEY, message, operator_id=operator_id)


def _parse_coordinate(raw: Union[int, str], *, operator_id: str, label: str) -> int:
    if isinstance(raw, bool):
        raise _malformed(operator_id, f"{label} must be an integer")
    if isinstance(raw, int):
        value = raw
    else:
        s = raw.strip()
        try:
            value = int(s, 16) if s.lower().startswith("0x") else int(s, 10)
        except ValueError:
            raise _malformed(operator_id, f"{label} is not an integer: {raw!r}") from None
    if value < 0:
        raise _malformed(operator_id, f"{label} is negative")
    return value


def _parse_stake(raw: Union[int, str], *, operator_id: str) -> Fraction:
    if isinstance(raw, bool):
        raise _malformed(operator_id, "stake must be numeric")
    try:
        value = Fraction(raw.strip() if isinstance(raw, str) else raw)
    except (ValueError, ZeroDivisionError):
        raise _malformed(operator_id, f"stake is not numeric: {raw!r}") from None
    if value < 0:
        raise _malformed(operator_id, "stake is negative")
    return value / STAKE_SCALE


def _coerce_record(raw: Union[OperatorRecord, Mapping[str, Any]]) -> OperatorRecord:
    if isinstance(raw, OperatorRecord):
        return raw
    operator_id = raw.get("id") if isinstance(raw, Mapping) else None
    try:
        return OperatorRecord.model_validate(raw)
    except ValidationError as e:
        raise _malformed(operator_id, f"invalid operator record: {e.error_count()} error(s)") from e


def _build_operator(record: OperatorRecord, backend: PairingBackend) -> Operator:
    oid = record.id
    g1_x = _parse_coordinate(record.pubkey_g1_x, operator_id=oid, label="pubkeyG1_X")
    g1_y = _parse_coordinate(record.pubkey_g1_y, operator_id=oid, label="pubkeyG1_Y")
    # Directory order is [imaginary, real]; the backend wants (real, imaginary).
    x_im, x_re = (_parse_coordinate(v, operator_id=oid, label="pubkeyG2_X") for v in record.pubkey_g2_x)
    y_im, y_re = (_parse_coordinate(v, operator_id=oid, label="pubkeyG2_Y") for v in record.pubkey_g2_y)

    try:
        pk_g1 = backend.g1_point(g1_x, g1_y)
        pk_g2 = backend.g2_point((x_re, x_im), (y_re, y_im))
    except ValueError as e:
        raise _malformed(oid, str(e)) from e

    return Operator(
        id=oid,
        operator_id=record.operator_id,
        stake=_parse_stake(record.stake, operator_id=oid),
        public_key_g1=pk_g1,
        public_key_g2=pk_g2,
        socket=record.socket,
    )


def build_operator_set(
    records: Iterable[Union[OperatorRecord, Mapping[str, Any]]],
    *,
    backend: Optional[PairingBackend] = None,
) -> OperatorSet:
    """
    Normalize raw directory records into an immutable :class:`OperatorSet`.

    The aggregate G2 key is computed here, once, before the set is returned;
    point addition is commutative so record order does not matter.
    """
    backend = backend or default_backend()
    operators: Dict[str, Operator] = {}
    for raw in records:
        record = _coerce_record(raw)
        if record.id in operators:
            raise RegistryError(
                RegistryErrorKind.DUPLICATE_ID,
                f"operator id {record.id!r} appears more than once",
                operator_id=record.id,
            )
        operators[record.id] = _build_operator(record, backend)

    aggregate = backend.identity()
    total = Fraction(0)
    for op in operators.values():
        aggregate = backend.add(aggregate, op.public_key_g2)
        total += op.stake

    return OperatorSet(
        operators=MappingProxyType(operators),
        aggregate_public_key=aggregate,
        total_stake=total,
    )


def stake_of(operator_set: OperatorSet, operator_ids: Iterable[str]) -> Tuple[Fraction, List[Operator]]:
    """Sum the stake of ``operator_ids``; unknown ids raise :class:`UnknownOperatorError`."""
    found = [operator_set[oid] for oid in operator_ids]
    return sum((op.stake for op in found), Fraction(0)), found
