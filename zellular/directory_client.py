from __future__ import annotations

from typing import Any, Dict, List, Optional

import bittensor as bt
import requests
from pydantic import ValidationError

from zellular.crypto.pairing import PairingBackend
from zellular.errors import NetworkError, ParseError
from zellular.registry import OperatorSet, build_operator_set
from zellular.schemas import OperatorsQueryResponse

DEFAULT_SUBGRAPH_URL = "https://api.studio.thegraph.com/query/85556/bls_apk_registry/version/latest"

OPERATORS_QUERY = """
query MyQuery {
  operators {
    id
    operatorId
    pubkeyG1_X
    pubkeyG1_Y
    pubkeyG2_X
    pubkeyG2_Y
    socket
    stake
  }
}
"""


class OperatorDirectoryClient:
    """Reads the operator snapshot from the BLS APK registry subgraph."""

    def __init__(self, subgraph_url: str = DEFAULT_SUBGRAPH_URL, *, timeout_s: float = 10.0) -> None:
        self.subgraph_url = subgraph_url
        self.timeout_s = timeout_s

    def fetch_operators(self) -> List[Dict[str, Any]]:
        try:
            r = requests.post(
                self.subgraph_url,
                json={"query": OPERATORS_QUERY},
                timeout=self.timeout_s,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"operator directory query failed: {e}") from e

        try:
            parsed = OperatorsQueryResponse.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            raise ParseError(f"malformed operator directory response: {e}") from e
        if parsed.errors:
            raise ParseError(f"operator directory returned errors: {parsed.errors}")
        if parsed.data is None:
            raise ParseError("operator directory returned no data")
        return parsed.data.operators

    def load_operator_set(self, *, backend: Optional[PairingBackend] = None) -> OperatorSet:
        records = self.fetch_operators()
        operator_set = build_operator_set(records, backend=backend)
        bt.logging.info(
            f"Loaded {len(operator_set)} operators (total stake {float(operator_set.total_stake):.4f})"
        )
        return operator_set
