"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

import pytest

from vestflow.core.clock import ManualClock
from vestflow.core.ledger import InMemoryLedger


@pytest.fixture
def clock():
    """Deterministic clock starting at t=1000."""
    return ManualClock(1000)


@pytest.fixture
def ledger():
    """Ledger with an empty custody account."""
    return InMemoryLedger()
