"""HTTP access to a sequencer node's batch API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from zellular.errors import NetworkError, ParseError
from zellular.schemas import (
    FinalizedBatches,
    FinalizedBatchesResponse,
    LastFinalized,
    LastFinalizedResponse,
)

SUBMIT_OK_STATUS = 200

_M = TypeVar("_M", bound=BaseModel)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a cap and a bounded number of attempts."""

    max_attempts: int = 5
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failure (1-based)."""
        return min(self.max_delay_s, self.base_delay_s * (self.multiplier ** max(0, attempt - 1)))


def _parse(resp: requests.Response, model: Type[_M]) -> _M:
    try:
        body = resp.json()
    except ValueError as e:
        raise ParseError(f"response body is not JSON: {e}") from e
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise ParseError(f"unexpected response shape: {e.error_count()} error(s)") from e


class NodeClient:
    def __init__(self, base_url: str, app_name: str, *, timeout_s: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.app_name = app_name
        self.timeout_s = timeout_s

    @property
    def batches_url(self) -> str:
        return f"{self.base_url}/node/{self.app_name}/batches"

    def _get(self, url: str, **kwargs: Any) -> requests.Response:
        try:
            r = requests.get(url, timeout=self.timeout_s, **kwargs)
            r.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"GET {url} failed: {e}") from e
        return r

    def get_finalized_batches(self, after: int) -> FinalizedBatches:
        """Batches after index ``after`` plus the latest finalization proof, if any."""
        r = self._get(f"{self.batches_url}/finalized", params={"after": int(after)})
        parsed = _parse(r, FinalizedBatchesResponse)
        if parsed.data is None:
            raise ParseError(f"no finalized data after index {after}")
        return parsed.data

    def get_last_finalized(self) -> LastFinalized:
        r = self._get(f"{self.batches_url}/finalized/last")
        parsed = _parse(r, LastFinalizedResponse)
        if parsed.data is None:
            raise ParseError("node returned no last finalized record")
        return parsed.data

    def put_batches(self, txs: List[Any]) -> Dict[str, Any]:
        try:
            r = requests.put(self.batches_url, json=txs, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise NetworkError(f"PUT {self.batches_url} failed: {e}") from e
        if r.status_code != SUBMIT_OK_STATUS:
            raise NetworkError(f"Failed to send batch: status={r.status_code}")
        try:
            ack = r.json()
        except ValueError as e:
            raise ParseError(f"submission acknowledgment is not JSON: {e}") from e
        return ack if isinstance(ack, dict) else {"data": ack}
