"""
conftest.py - Shared test fixtures for pointgrid

pytest reads this file before running any test, and every fixture defined
here can be requested by name from any test module.

Geometry used throughout
------------------------
square      : box(0, 0, 10, 10)
l_shape     : the square minus its top-right 6×6 block

    y=10 +----+
         |    |
    y=4  |    +---------+
         |              |
    y=0  +--------------+
        x=0  x=4      x=10

With resolution=2 the L-shape gives a 5×5 grid (ids 1..25, row 0 on top).
Cells 3, 4, 5, 8, 9, 10, 13, 14, 15 lie in the missing block (cells 3, 8
and 13 only touch the boundary along x=4), leaving 16 in-boundary cells.
"""

import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Polygon, box

from pointgrid.data.config import GridConfig
from pointgrid.spatial.grid.counting import PointEvent
from pointgrid.spatial.grid.indexer import build_grid

# ===========================================================================
# Constants
# ===========================================================================

L_OUTSIDE_IDS = {3, 4, 5, 8, 9, 10, 13, 14, 15}
L_INSIDE_IDS = sorted(set(range(1, 26)) - L_OUTSIDE_IDS)
N_YEARS = 3


# ===========================================================================
# Boundaries
# ===========================================================================


@pytest.fixture
def square():
    """10×10 square window anchored at the origin."""
    return box(0, 0, 10, 10)


@pytest.fixture
def l_shape():
    """Irregular (non-rectangular) L-shaped window with the same bounding box."""
    return Polygon([(0, 0), (10, 0), (10, 4), (4, 4), (4, 10), (0, 10)])


# ===========================================================================
# Grids built from the boundaries
# ===========================================================================


@pytest.fixture
def square_grid(square):
    """2×2 grid over the square (resolution 5)."""
    return build_grid(square, resolution=5)


@pytest.fixture
def l_grid(l_shape):
    """5×5 grid over the L-shape (resolution 2)."""
    return build_grid(l_shape, resolution=2)


# ===========================================================================
# Events
# ===========================================================================


@pytest.fixture
def example_events():
    """
    Three events in slice t=1: bottom-left, bottom-right and top-left
    quadrants of the square.
    """
    return [PointEvent(1, 1, 1), PointEvent(6, 1, 1), PointEvent(1, 6, 1)]


@pytest.fixture
def multi_year_events():
    """
    Events over N_YEARS slices, scattered over (and slightly beyond) the
    square, as a DataFrame with x, y, t columns.
    """
    rng = np.random.default_rng(42)
    n = 300
    return pd.DataFrame({
        "x": rng.uniform(-1, 11, n),
        "y": rng.uniform(-1, 11, n),
        "t": rng.integers(1, N_YEARS + 1, n),
    })


@pytest.fixture
def raw_events():
    """
    Raw event table as it would come from a persisted dataset: region code,
    calendar year and coordinates, including one row without coordinates.
    """
    return pd.DataFrame({
        "x": [1.0, 2.0, 3.0, 4.0, 5.0, np.nan, 7.0],
        "y": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0],
        "year": [2014, 2015, 2016, 2017, 2015, 2016, 2016],
        "region": ["A", "A", "A", "B", "A", "A", "B"],
    })


@pytest.fixture
def config():
    """Default configuration."""
    return GridConfig()
