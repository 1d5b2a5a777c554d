import sys
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import zellular` works under all pytest import modes.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import ToyBackend, toy_operator_set  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: runs a real HTTP server in a thread")


@pytest.fixture
def toy_backend():
    return ToyBackend()


@pytest.fixture
def abc_operators(toy_backend):
    """Operators A/B/C with 40/30/30 stake."""
    return toy_operator_set(toy_backend)
