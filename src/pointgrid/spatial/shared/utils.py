# src/pointgrid/spatial/shared/utils.py

"""
utils.py - Shared utilities for spatial analysis

Boundary normalization, bounding boxes and small numeric helpers used by
both the grid and the point-intensity modules.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple, Union

import geopandas as gpd
import numpy as np
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from pointgrid.data.config import EmptyBoundary

BoundaryLike = Union[BaseGeometry, gpd.GeoSeries, gpd.GeoDataFrame]


def normalize_boundary(boundary: BoundaryLike) -> Tuple[BaseGeometry, Optional[object]]:
    """
    Reduce a boundary input to a single polygonal geometry and its CRS.

    Parameters
    ----------
    boundary : shapely geometry, GeoSeries or GeoDataFrame
        Observation window. GeoPandas inputs are dissolved into one
        (multi-)polygon.

    Returns
    -------
    geometry : Polygon or MultiPolygon
    crs : pyproj.CRS or None

    Raises
    ------
    EmptyBoundary
        If the boundary is missing, empty, not polygonal, or has zero area.
    """
    if boundary is None:
        raise EmptyBoundary("Boundary is None")

    crs = None
    if isinstance(boundary, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if len(boundary) == 0:
            raise EmptyBoundary("Boundary GeoDataFrame has no rows")
        crs = boundary.crs
        geoms = boundary.geometry if isinstance(boundary, gpd.GeoDataFrame) else boundary
        geometry = geoms.union_all()
    elif isinstance(boundary, BaseGeometry):
        geometry = boundary
    else:
        raise TypeError(
            f"Boundary must be a shapely geometry or GeoPandas object, got {type(boundary).__name__}"
        )

    if geometry is None or geometry.is_empty:
        raise EmptyBoundary("Boundary geometry is empty")
    if not isinstance(geometry, (Polygon, MultiPolygon)):
        raise EmptyBoundary(f"Boundary must be polygonal, got {geometry.geom_type}")
    if geometry.area <= 0:
        raise EmptyBoundary("Boundary has zero area")

    return geometry, crs


def bounding_box(geometry: BaseGeometry) -> Tuple[float, float, float, float]:
    """Return (xmin, ymin, xmax, ymax) of a geometry as plain floats."""
    xmin, ymin, xmax, ymax = geometry.bounds
    return float(xmin), float(ymin), float(xmax), float(ymax)


def calculate_spatial_extent(x: np.ndarray, y: np.ndarray) -> Dict[str, float]:
    """
    Calculate spatial extent (bounding box) of a set of points.

    Parameters
    ----------
    x, y : np.ndarray
        Point coordinates.

    Returns
    -------
    dict
        Bounding box with keys: xmin, xmax, ymin, ymax, width, height, area

    Examples
    --------
    >>> extent = calculate_spatial_extent(events['x'].values, events['y'].values)
    >>> print(f"Window size: {extent['width']} × {extent['height']}")
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if len(x) == 0:
        raise ValueError("Cannot compute extent of an empty point set")

    extent = {
        'xmin': float(x.min()),
        'xmax': float(x.max()),
        'ymin': float(y.min()),
        'ymax': float(y.max()),
    }

    extent['width'] = extent['xmax'] - extent['xmin']
    extent['height'] = extent['ymax'] - extent['ymin']
    extent['area'] = extent['width'] * extent['height']

    return extent


def safe_divide(numerator: np.ndarray,
                denominator: np.ndarray,
                fill_value: float = 0.0) -> np.ndarray:
    """
    Safely divide arrays, handling division by zero.

    Parameters
    ----------
    numerator : np.ndarray
        Numerator values
    denominator : np.ndarray
        Denominator values
    fill_value : float, default=0.0
        Value to use when denominator is zero

    Returns
    -------
    np.ndarray
        Result of division
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        result = np.atleast_1d(numerator / denominator)
        result[~np.isfinite(result)] = fill_value

    return result
