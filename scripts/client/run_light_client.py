"""Stream verified batches of one app and log every transaction in them."""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running as a script without requiring `PYTHONPATH=.`.
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import argparse
import itertools
import json
from typing import List, Optional

import bittensor as bt

from zellular.client import Zellular
from zellular.config import load_light_client_env
from zellular.errors import ZellularError


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--after",
        type=int,
        default=None,
        help="Start after this index (overrides ZELLULAR_START_INDEX).",
    )
    parser.add_argument(
        "--max_batches",
        type=int,
        default=0,
        help="Stop after this many verified batches (0 = run forever).",
    )
    bt.logging.add_args(parser)
    return parser.parse_args(argv)


def _log_batch(payload: str, index: int) -> int:
    try:
        txs = json.loads(payload)
    except ValueError:
        bt.logging.warning(f"batch {index} is not JSON; skipping body")
        return 0
    if not isinstance(txs, list):
        txs = [txs]
    for i, tx in enumerate(txs):
        bt.logging.info(f"{index} {i} {tx}")
    return len(txs)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if getattr(args, "logging.debug", False):
        bt.logging.set_debug(True)

    cfg = load_light_client_env()
    after = cfg.start_index if args.after is None else max(0, args.after)
    seed = cfg.seed_chaining_hash if args.after is None else None

    try:
        client = Zellular.from_config(cfg)
    except ZellularError as e:
        bt.logging.error(f"Failed to initialise light client: {e}")
        return 2

    bt.logging.info(f"Streaming {cfg.app_name} from {client.base_url} after index {after}")
    stream = client.batches(after=after, seed_chaining_hash=seed)
    limited = itertools.islice(stream, args.max_batches) if args.max_batches > 0 else stream
    try:
        for payload, index in limited:
            _log_batch(payload, index)
    except ZellularError as e:
        bt.logging.error(f"Stream stopped: {e}")
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        stream.cancel()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
