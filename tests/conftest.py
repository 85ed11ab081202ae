from __future__ import annotations

import pytest

from life3d import Life3D
from tests.factories import make_life


@pytest.fixture
def empty_life() -> Life3D:
    return make_life()


@pytest.fixture
def full_cube() -> Life3D:
    """3×3×3 grid with every cell alive."""
    return make_life(size=(3, 3, 3), probability=1.0)
