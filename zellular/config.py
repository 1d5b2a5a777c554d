from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from zellular.directory_client import DEFAULT_SUBGRAPH_URL
from zellular.transport import RetryPolicy
from zellular.utils.env import _env_bool, _env_float, _env_int, _env_optional_str, _env_str
from zellular.verifier import DEFAULT_THRESHOLD_PERCENT


@dataclass(frozen=True)
class LightClientConfig:
    app_name: str
    # Node to read from; None means "pick a random operator socket".
    base_url: Optional[str]
    directory_url: str
    threshold_percent: float
    timeout_s: float
    retry: RetryPolicy
    poll_interval_s: float
    start_index: int
    seed_chaining_hash: Optional[str]
    allow_untrusted_bootstrap: bool


def _die(msg: str) -> None:
    raise SystemExit(f"[zellular] {msg}")


def _check_http(name: str, url: str) -> None:
    if not url.startswith(("http://", "https://")):
        _die(f"{name} must be http(s). Got: {url!r}")


def load_light_client_env() -> LightClientConfig:
    """Load light client settings from env/.env, exiting on invalid values."""
    app_name = _env_str("ZELLULAR_APP_NAME", "")
    if not app_name:
        _die("Missing required env var: ZELLULAR_APP_NAME.")

    base_url = _env_str("ZELLULAR_BASE_URL", "").rstrip("/") or None
    if base_url:
        _check_http("ZELLULAR_BASE_URL", base_url)

    directory_url = _env_str("ZELLULAR_DIRECTORY_URL", DEFAULT_SUBGRAPH_URL) or DEFAULT_SUBGRAPH_URL
    _check_http("ZELLULAR_DIRECTORY_URL", directory_url)

    threshold = _env_float("ZELLULAR_THRESHOLD_PERCENT", float(DEFAULT_THRESHOLD_PERCENT))
    if not 0.0 <= threshold <= 100.0:
        _die(f"ZELLULAR_THRESHOLD_PERCENT must be within [0, 100]. Got: {threshold}")

    max_attempts = _env_int("ZELLULAR_MAX_ATTEMPTS", 5)
    base_delay = _env_float("ZELLULAR_BACKOFF_BASE_S", 0.5)
    max_delay = _env_float("ZELLULAR_BACKOFF_MAX_S", 8.0)
    if max_attempts < 1:
        _die(f"ZELLULAR_MAX_ATTEMPTS must be >= 1. Got: {max_attempts}")
    if base_delay < 0 or max_delay < 0:
        _die("ZELLULAR_BACKOFF_BASE_S and ZELLULAR_BACKOFF_MAX_S must be non-negative.")

    start_index = _env_int("ZELLULAR_START_INDEX", 0)
    if start_index < 0:
        _die(f"ZELLULAR_START_INDEX must be >= 0. Got: {start_index}")
    seed = _env_optional_str("ZELLULAR_SEED_CHAINING_HASH")
    allow_tofu = _env_bool("ZELLULAR_ALLOW_UNTRUSTED_BOOTSTRAP", True)
    if start_index > 0 and seed is None and not allow_tofu:
        _die(
            "ZELLULAR_START_INDEX > 0 needs ZELLULAR_SEED_CHAINING_HASH when "
            "ZELLULAR_ALLOW_UNTRUSTED_BOOTSTRAP=false."
        )

    return LightClientConfig(
        app_name=app_name,
        base_url=base_url,
        directory_url=directory_url,
        threshold_percent=threshold,
        timeout_s=max(0.1, _env_float("ZELLULAR_TIMEOUT_S", 5.0)),
        retry=RetryPolicy(max_attempts=max_attempts, base_delay_s=base_delay, max_delay_s=max_delay),
        poll_interval_s=max(0.0, _env_float("ZELLULAR_POLL_INTERVAL_S", 0.5)),
        start_index=start_index,
        seed_chaining_hash=seed,
        allow_untrusted_bootstrap=allow_tofu,
    )
