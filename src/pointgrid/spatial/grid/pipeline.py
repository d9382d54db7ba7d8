"""
pipeline.py - GridIndexer, the end-to-end discretization pipeline

boundary + resolution -> grid skeleton -> per-slice counts -> boundary
filter -> time-stacked table. The grid is built once and every slice is
counted against that same GridSpec and Cell list.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

import geopandas as gpd
import pandas as pd

from pointgrid.data.config import GridConfig
from pointgrid.spatial.shared.utils import BoundaryLike
from .adjacency import GridAdjacency, build_grid_adjacency
from .counting import EventsLike, count_events, count_timeslices
from .indexer import Cell, GridSpec, build_grid
from .stacking import (
    CellObservation,
    CountMap,
    cells_to_geodataframe,
    observations_to_frame,
    stack_timeslices,
)


class GridIndexer:
    """
    Discretizes timestamped point events onto a boundary-clipped grid.

    Parameters
    ----------
    boundary : shapely Polygon/MultiPolygon, GeoSeries or GeoDataFrame
        Observation window.
    resolution : float
        Cell side length in boundary units.
    config : GridConfig, optional
        Column names, validation and worker settings.

    Examples
    --------
    >>> indexer = GridIndexer(region_gdf, resolution=2000)
    >>> table = indexer.run(events_df)           # one row per (t, cell)
    >>> graph = indexer.adjacency()              # spatial neighbourhood
    >>> gdf = indexer.to_geodataframe(values=indexer.count(events_df, t=1))
    """

    def __init__(self,
                 boundary: BoundaryLike,
                 resolution: float,
                 config: Optional[GridConfig] = None):
        self.boundary = boundary
        self.resolution = resolution
        self.config = config or GridConfig()
        self._grid_spec: Optional[GridSpec] = None
        self._cells: Optional[Tuple[Cell, ...]] = None

    def build(self) -> Tuple[GridSpec, Tuple[Cell, ...]]:
        """Build the grid on first use and return the cached (GridSpec, cells)."""
        if self._grid_spec is None:
            spec, cells = build_grid(self.boundary, self.resolution)
            self._grid_spec, self._cells = spec, tuple(cells)
        return self._grid_spec, self._cells

    @property
    def grid_spec(self) -> GridSpec:
        return self.build()[0]

    @property
    def cells(self) -> Tuple[Cell, ...]:
        return self.build()[1]

    @property
    def in_boundary_ids(self) -> List[int]:
        return [c.id for c in self.cells if c.in_boundary]

    def count(self, events: EventsLike, t: int) -> pd.Series:
        """Counts per cell id for one time slice."""
        return count_events(self.grid_spec, events, t, config=self.config)

    def count_all(self,
                  events: EventsLike,
                  times: Optional[Iterable[int]] = None) -> List[Tuple[int, pd.Series]]:
        """Counts for every time slice, ordered by t."""
        return count_timeslices(self.grid_spec, events, times=times,
                                n_jobs=self.config.n_jobs, config=self.config)

    def stack(self, per_t_counts: Sequence[Tuple[int, CountMap]]) -> List[CellObservation]:
        """Stack count maps into CellObservations over in-boundary cells."""
        return stack_timeslices(self.grid_spec, self.cells, per_t_counts,
                                n_jobs=self.config.n_jobs)

    def run(self,
            events: EventsLike,
            times: Optional[Iterable[int]] = None) -> pd.DataFrame:
        """
        Full pipeline: count every slice and return the regression table.

        Parameters
        ----------
        events : DataFrame, sequence of PointEvent, or (n, 3) array
            Events with a 1-based time index (see `assign_time_index`).
        times : iterable of int, optional
            Slices to include. Defaults to 1..max(t).

        Returns
        -------
        pd.DataFrame
            Columns cell_id, t, count, cell_area, in_boundary, id_time;
            n_slices × n_in_boundary rows sorted by (t, cell_id).
        """
        observations = self.stack(self.count_all(events, times=times))
        return observations_to_frame(observations, config=self.config)

    def adjacency(self, contiguity: Optional[str] = None) -> GridAdjacency:
        """Contiguity graph between in-boundary cells."""
        return build_grid_adjacency(self.grid_spec, self.cells,
                                    contiguity=contiguity or self.config.contiguity)

    def to_geodataframe(self,
                        values: Optional[CountMap] = None,
                        value_name: str = 'value',
                        only_in_boundary: bool = True) -> gpd.GeoDataFrame:
        """Cell geometries (with optional per-cell values) for mapping."""
        return cells_to_geodataframe(self.cells, crs=self.grid_spec.crs, values=values,
                                     value_name=value_name, only_in_boundary=only_in_boundary)

    def summary(self) -> dict:
        spec = self.grid_spec
        info = spec.summary()
        info['n_in_boundary'] = len(self.in_boundary_ids)
        return info

    def __repr__(self) -> str:
        if self._grid_spec is None:
            return f"GridIndexer(resolution={self.resolution!r}, unbuilt)"
        spec = self._grid_spec
        return (f"GridIndexer({spec.n_rows}×{spec.n_cols}, resolution={spec.resolution:g}, "
                f"in_boundary={len(self.in_boundary_ids)})")
