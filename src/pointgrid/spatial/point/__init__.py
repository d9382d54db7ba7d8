# src/pointgrid/spatial/point/__init__.py

"""
Point-pattern summaries evaluated on grid cells.

quadrat_intensity
    Add count / cell_area to a stacked table
quadrat_test
    Index-of-dispersion test of complete spatial randomness per time slice
kernel_intensity
    Gaussian kernel intensity at in-boundary cell centroids
"""

from .intensity import (
    kernel_intensity,
    quadrat_intensity,
    quadrat_test,
)

__all__ = [
    'kernel_intensity',
    'quadrat_intensity',
    'quadrat_test',
]
