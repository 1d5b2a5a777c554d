__version__ = "0.1.0"

from zellular.client import Zellular
from zellular.errors import (
    InvalidSignatureError,
    NetworkError,
    ParseError,
    RegistryError,
    RegistryErrorKind,
    UnknownOperatorError,
    ZellularError,
)
from zellular.fetcher import Batch, ChainState, ChainedBatchFetcher
from zellular.registry import Operator, OperatorSet, build_operator_set
from zellular.stream import BatchStream, CancellationToken
from zellular.verifier import ThresholdSignatureVerifier, verify

__all__ = [
    "Batch",
    "BatchStream",
    "CancellationToken",
    "ChainState",
    "ChainedBatchFetcher",
    "InvalidSignatureError",
    "NetworkError",
    "Operator",
    "OperatorSet",
    "ParseError",
    "RegistryError",
    "RegistryErrorKind",
    "ThresholdSignatureVerifier",
    "UnknownOperatorError",
    "Zellular",
    "ZellularError",
    "build_operator_set",
    "verify",
]
