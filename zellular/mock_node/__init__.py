"""Local sequencer node stand-in.

Serves the same batch API as a real node and signs its finalizations with
BN254 keys derived from small secret keys, so the light client can be run end
to end without a network. Not meant to be exposed publicly.
"""

from zellular.mock_node.app import create_app
from zellular.mock_node.storage import InMemorySequencer, MockOperator

__all__ = ["InMemorySequencer", "MockOperator", "create_app"]
