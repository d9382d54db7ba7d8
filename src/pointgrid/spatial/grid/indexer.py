"""
indexer.py - Grid skeleton construction

Turns a boundary polygon and a cell resolution into an aligned rectangular
grid of square cells with stable integer ids.

Key design decisions:
- The grid is anchored at the top-left corner of the boundary's bounding box
  (xmin, ymax). Columns extend right, rows extend down, so the grid
  over-covers the bounding box on its right and bottom sides only.
- Cell ids are 1-based and assigned row-major starting from the top row:
  id = row * n_cols + col + 1. Point binning in counting.py uses the same
  edge arrays, so an id always names the same square.
- Cells outside the boundary are flagged, never renumbered.
"""
from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import shapely
from shapely.geometry import Polygon

from pointgrid.data.config import InvalidResolution, MisalignedGridReuse
from pointgrid.spatial.shared.utils import BoundaryLike, bounding_box, normalize_boundary


@dataclass(frozen=True)
class GridSpec:
    """
    Geometry of a regular grid derived from a boundary and a resolution.

    Attributes
    ----------
    xmin, ymin, xmax, ymax : float
        Bounding box of the boundary the grid was built from.
    resolution : float
        Cell side length, in boundary units.
    n_rows, n_cols : int
        Smallest grid dimensions whose cells cover the bounding box.
    crs : pyproj.CRS or None
        Coordinate reference system of the boundary, when known.
    inside_ids : tuple of int or None
        Ids of the cells that overlap the boundary, set by `build_grid`.
        Not part of equality: grids over the same bounding box and
        resolution share cell geometry and ids.
    """
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    resolution: float
    n_rows: int
    n_cols: int
    crs: Optional[object] = None
    inside_ids: Optional[Tuple[int, ...]] = field(default=None, repr=False, compare=False)

    @property
    def origin(self) -> Tuple[float, float]:
        """Top-left grid corner (x, y)."""
        return self.xmin, self.ymax

    @property
    def n_cells(self) -> int:
        return self.n_rows * self.n_cols

    @property
    def cell_area(self) -> float:
        return self.resolution ** 2

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_rows, self.n_cols

    def col_edges(self) -> np.ndarray:
        """x coordinates of column edges, left to right (n_cols + 1)."""
        return self.xmin + np.arange(self.n_cols + 1, dtype=np.float64) * self.resolution

    def row_edges(self) -> np.ndarray:
        """y coordinates of row edges, top to bottom (n_rows + 1)."""
        return self.ymax - np.arange(self.n_rows + 1, dtype=np.float64) * self.resolution

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        """Grid extent (xmin, ymin, xmax, ymax); contains the bounding box."""
        return (self.xmin, float(self.row_edges()[-1]),
                float(self.col_edges()[-1]), self.ymax)

    def cell_id(self, row: int, col: int) -> int:
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise IndexError(f"Cell ({row}, {col}) outside {self.n_rows}×{self.n_cols} grid")
        return row * self.n_cols + col + 1

    def row_col(self, cell_id: int) -> Tuple[int, int]:
        if not 1 <= cell_id <= self.n_cells:
            raise IndexError(f"Cell id {cell_id} outside 1..{self.n_cells}")
        return divmod(cell_id - 1, self.n_cols)

    def cell_bounds(self, row: int, col: int) -> Tuple[float, float, float, float]:
        """(x0, y0, x1, y1) of one cell, computed from the shared edge arrays."""
        xs = self.col_edges()
        ys = self.row_edges()
        return float(xs[col]), float(ys[row + 1]), float(xs[col + 1]), float(ys[row])

    def summary(self) -> dict:
        return {
            'n_rows': self.n_rows,
            'n_cols': self.n_cols,
            'n_cells': self.n_cells,
            'resolution': self.resolution,
            'cell_area': self.cell_area,
            'origin': self.origin,
            'extent': self.extent,
            'crs': str(self.crs) if self.crs is not None else None,
        }


@dataclass(frozen=True)
class Cell:
    """One grid cell. `id` is stable across every time slice of a grid."""
    row: int
    col: int
    id: int
    geometry: Polygon
    in_boundary: bool


def _check_resolution(resolution, width: float, height: float) -> float:
    if isinstance(resolution, bool) or not isinstance(resolution, numbers.Real):
        raise InvalidResolution(resolution, "must be a real number")
    resolution = float(resolution)
    if not math.isfinite(resolution) or resolution <= 0:
        raise InvalidResolution(resolution, "must be a positive finite number")
    if resolution > min(width, height):
        raise InvalidResolution(
            resolution,
            f"exceeds the smaller bounding box side ({min(width, height):g})"
        )
    return resolution


def _n_cells_along(origin: float, far: float, resolution: float) -> int:
    """Smallest n whose n-th edge, stepping from origin towards far, reaches far."""
    step = resolution if far >= origin else -resolution

    def reaches(k):
        return (origin + k * step - far) * step >= 0

    n = max(int(math.ceil(abs(far - origin) / resolution)), 1)
    # correct for ratios that rounded across an exact multiple
    while n > 1 and reaches(n - 1):
        n -= 1
    while not reaches(n):
        n += 1
    return n


def build_grid(boundary: BoundaryLike,
               resolution: float) -> Tuple[GridSpec, List[Cell]]:
    """
    Build the grid skeleton for a boundary.

    Parameters
    ----------
    boundary : shapely Polygon/MultiPolygon, GeoSeries or GeoDataFrame
        Observation window. GeoPandas inputs are dissolved and their CRS kept.
    resolution : float
        Cell side length. Must be positive and no larger than the smaller
        side of the boundary's bounding box.

    Returns
    -------
    GridSpec
        Grid geometry.
    list of Cell
        All n_rows * n_cols cells in row-major order from the top row,
        ids 1..n_cells. `in_boundary` is True iff the cell overlaps the
        boundary with non-zero area.

    Raises
    ------
    EmptyBoundary
        If the boundary is missing, empty or degenerate.
    InvalidResolution
        If the resolution is invalid for this boundary.

    Examples
    --------
    >>> from shapely.geometry import box
    >>> spec, cells = build_grid(box(0, 0, 10, 10), resolution=5)
    >>> spec.shape
    (2, 2)
    >>> [c.id for c in cells]
    [1, 2, 3, 4]
    """
    geometry, crs = normalize_boundary(boundary)
    xmin, ymin, xmax, ymax = bounding_box(geometry)
    width, height = xmax - xmin, ymax - ymin

    resolution = _check_resolution(resolution, width, height)

    spec = GridSpec(
        xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax,
        resolution=resolution,
        n_rows=_n_cells_along(ymax, ymin, resolution),
        n_cols=_n_cells_along(xmin, xmax, resolution),
        crs=crs,
    )

    print(f"\n[Grid] Building {spec.n_rows}×{spec.n_cols} grid (resolution={resolution:g})...")

    xs = spec.col_edges()
    ys = spec.row_edges()
    rows, cols = np.divmod(np.arange(spec.n_cells), spec.n_cols)

    geoms = shapely.box(xs[cols], ys[rows + 1], xs[cols + 1], ys[rows])
    in_boundary = _boundary_membership(geoms, geometry)
    spec = replace(spec, inside_ids=tuple(int(i) for i in np.flatnonzero(in_boundary) + 1))

    cells = [
        Cell(row=int(r), col=int(c), id=int(i + 1), geometry=g, in_boundary=bool(inside))
        for i, (r, c, g, inside) in enumerate(zip(rows, cols, geoms, in_boundary))
    ]

    n_inside = int(in_boundary.sum())
    print(f"  ✓ {spec.n_cells} cells, {n_inside} intersect the boundary "
          f"({spec.n_cells - n_inside} outside)")

    return spec, cells


def _boundary_membership(geoms: np.ndarray, boundary) -> np.ndarray:
    """True where a cell overlaps the boundary with non-zero area."""
    series = gpd.GeoSeries(geoms)
    candidates = series.intersects(boundary).to_numpy()
    inside = np.zeros(len(series), dtype=bool)
    if candidates.any():
        overlap = series[candidates].intersection(boundary).area.to_numpy()
        inside[candidates] = overlap > 0
    return inside


def check_cells(grid_spec: GridSpec, cells: Sequence[Cell]) -> None:
    """
    Verify that `cells` is exactly the cell set `build_grid` makes for `grid_spec`.

    Raises
    ------
    MisalignedGridReuse
        On any difference in count, order, row/col, id or geometry bounds,
        or in `in_boundary` flags when `grid_spec` records its membership.
    """
    if not isinstance(grid_spec, GridSpec):
        raise MisalignedGridReuse(f"Expected GridSpec, got {type(grid_spec).__name__}")
    if len(cells) != grid_spec.n_cells:
        raise MisalignedGridReuse(
            f"Grid has {grid_spec.n_cells} cells but {len(cells)} were supplied"
        )

    xs = grid_spec.col_edges()
    ys = grid_spec.row_edges()
    for position, cell in enumerate(cells):
        row, col = divmod(position, grid_spec.n_cols)
        if (cell.row, cell.col, cell.id) != (row, col, position + 1):
            raise MisalignedGridReuse(
                f"Cell at position {position} is (row={cell.row}, col={cell.col}, "
                f"id={cell.id}); expected (row={row}, col={col}, id={position + 1})"
            )
        expected = (xs[col], ys[row + 1], xs[col + 1], ys[row])
        if tuple(cell.geometry.bounds) != tuple(float(v) for v in expected):
            raise MisalignedGridReuse(
                f"Cell {cell.id} geometry {cell.geometry.bounds} does not match grid edges {expected}"
            )

    if grid_spec.inside_ids is not None:
        flagged = tuple(c.id for c in cells if c.in_boundary)
        if flagged != grid_spec.inside_ids:
            differing = sorted(set(flagged).symmetric_difference(grid_spec.inside_ids))
            raise MisalignedGridReuse(
                f"in_boundary flags differ from the grid's boundary membership "
                f"for cell(s) {differing[:10]}"
            )
