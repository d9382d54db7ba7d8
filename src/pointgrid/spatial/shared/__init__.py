# src/pointgrid/spatial/shared/__init__.py

"""
Shared utilities for spatial analysis.
"""

from .utils import (
    BoundaryLike,
    bounding_box,
    calculate_spatial_extent,
    normalize_boundary,
    safe_divide,
)

__all__ = [
    'BoundaryLike',
    'bounding_box',
    'calculate_spatial_extent',
    'normalize_boundary',
    'safe_divide',
]
