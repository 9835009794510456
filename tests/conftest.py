"""
Shared fixtures for the gesture stream tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import make_frame


def create_hand_frame(offset: float = 0.0, spread: float = 1.0, count: int = 21):
    """
    Create a synthetic hand frame for testing.

    Points fan out from a wrist near the frame centre and stay inside the
    unit square for small offsets.

    Args:
        offset: shift applied to every x/y coordinate
        spread: scale of the fan (1.0 = default hand size)
        count: number of landmarks
    """
    return make_frame([
        (0.5 + offset + 0.01 * i * spread,
         0.6 + offset - 0.02 * i * spread,
         -0.001 * i)
        for i in range(count)
    ])


@pytest.fixture
def hand_frame():
    """Default 21-point hand."""
    return create_hand_frame()


@pytest.fixture
def make_hand():
    """Factory for hands with custom offset/spread/count."""
    return create_hand_frame
