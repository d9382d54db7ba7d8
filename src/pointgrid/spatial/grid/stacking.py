"""
stacking.py - Time-stacked cell observation table

Combines per-slice count maps into the long table consumed by grid-based
point-process regressions: one row per (t, in-boundary cell), sorted by
(t, cell_id), zeros materialized.

The same GridSpec and Cell list must be used for every slice. Count maps
produced by `count_events` remember their GridSpec, and any mismatch is
rejected with MisalignedGridReuse.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import geopandas as gpd
import numpy as np
import pandas as pd

from pointgrid.data.config import GridConfig, MisalignedGridReuse, ValidationError
from .indexer import Cell, GridSpec, check_cells

CountMap = Union[pd.Series, Mapping[int, int]]


@dataclass(frozen=True)
class CellObservation:
    """
    Count of events in one cell during one time slice.

    Attributes
    ----------
    cell_id : int
        Grid id of the cell (stable across slices).
    t : int
        1-based time slice.
    count : int
        Number of events in the cell during slice t.
    cell_area : float
        Area of the cell (resolution squared).
    in_boundary : bool
        Always True in stacked output; outside cells are not emitted.
    id_time : int
        Temporal grouping index for the downstream model (equal to t).
    """
    cell_id: int
    t: int
    count: int
    cell_area: float
    in_boundary: bool
    id_time: int


def _validate_counts(grid_spec: GridSpec, t, counts: CountMap) -> Dict[int, int]:
    """Check one slice's count map against the grid and return it as a dict."""
    if isinstance(t, (bool, np.bool_)) or not isinstance(t, (int, np.integer)):
        raise ValidationError(f"Time index must be an integer, got {t!r}")
    if t < 1:
        raise ValidationError(f"Time index must be >= 1, got {t}")

    if isinstance(counts, pd.Series):
        source = counts.attrs.get('grid_spec')
        if source is not None and source != grid_spec:
            raise MisalignedGridReuse(
                f"Counts for t={t} were produced on a different grid "
                f"({source.n_rows}×{source.n_cols}, resolution={source.resolution:g})"
            )

    result = {}
    for cell_id, count in counts.items():
        if not 1 <= int(cell_id) <= grid_spec.n_cells:
            raise MisalignedGridReuse(
                f"Counts for t={t} reference cell id {cell_id} outside 1..{grid_spec.n_cells}"
            )
        if count < 0:
            raise ValidationError(f"Negative count {count} for cell {cell_id} at t={t}")
        result[int(cell_id)] = int(count)
    return result


def stack_timeslices(grid_spec: GridSpec,
                     cells: Sequence[Cell],
                     per_t_counts: Sequence[Tuple[int, CountMap]],
                     n_jobs: Optional[int] = None) -> List[CellObservation]:
    """
    Stack per-slice counts into the ordered observation table.

    Parameters
    ----------
    grid_spec : GridSpec
        Grid the counts were computed on.
    cells : sequence of Cell
        Cells returned by `build_grid` for `grid_spec`.
    per_t_counts : sequence of (t, mapping cell_id -> count)
        One entry per time slice, e.g. the output of `count_timeslices`.
        Cells missing from a mapping count as zero.
    n_jobs : int, optional
        Worker threads for building per-slice blocks. None or 1 is serial.

    Returns
    -------
    list of CellObservation
        n_slices × n_in_boundary rows, sorted by (t, cell_id).

    Raises
    ------
    MisalignedGridReuse
        If `cells` or any count map does not belong to `grid_spec`.
    ValueError
        If a time slice appears more than once.
    """
    check_cells(grid_spec, cells)

    slices = [(t, _validate_counts(grid_spec, t, counts)) for t, counts in per_t_counts]
    times = [t for t, _ in slices]
    if len(set(times)) != len(times):
        dupes = sorted({t for t in times if times.count(t) > 1})
        raise ValueError(f"Duplicate time slices: {dupes}")
    slices.sort(key=lambda item: item[0])

    inside = [c for c in cells if c.in_boundary]
    cell_area = grid_spec.cell_area

    print(f"\n[Stack] Stacking {len(slices)} time slice(s) × {len(inside)} cells...")

    def _block(item):
        t, counts = item
        t = int(t)
        return [
            CellObservation(
                cell_id=c.id,
                t=t,
                count=counts.get(c.id, 0),
                cell_area=cell_area,
                in_boundary=True,
                id_time=t,
            )
            for c in inside
        ]

    if n_jobs is None or n_jobs <= 1 or len(slices) <= 1:
        blocks = [_block(item) for item in slices]
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as ex:
            blocks = list(ex.map(_block, slices))

    observations = [obs for block in blocks for obs in block]
    observations.sort(key=lambda o: (o.t, o.cell_id))

    total = sum(o.count for o in observations)
    print(f"  ✓ {len(observations)} rows, {total} events inside the boundary")

    return observations


def observations_to_frame(observations: Sequence[CellObservation],
                          config: Optional[GridConfig] = None) -> pd.DataFrame:
    """
    Convert stacked observations to the regression input table.

    Parameters
    ----------
    observations : sequence of CellObservation
    config : GridConfig, optional
        Supplies the cell id and time column names.

    Returns
    -------
    pd.DataFrame
        Columns: cell_id, t, count, cell_area, in_boundary, id_time, in the
        order of `observations`.
    """
    config = config or GridConfig()
    columns = [config.cell_id_col, config.time_col, 'count', 'cell_area', 'in_boundary', 'id_time']

    if len(observations) == 0:
        return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in zip(
            columns, ['int64', 'int64', 'int64', 'float64', 'bool', 'int64'])})

    return pd.DataFrame({
        config.cell_id_col: np.array([o.cell_id for o in observations], dtype=np.int64),
        config.time_col: np.array([o.t for o in observations], dtype=np.int64),
        'count': np.array([o.count for o in observations], dtype=np.int64),
        'cell_area': np.array([o.cell_area for o in observations], dtype=np.float64),
        'in_boundary': np.array([o.in_boundary for o in observations], dtype=bool),
        'id_time': np.array([o.id_time for o in observations], dtype=np.int64),
    }, columns=columns)


def cells_to_geodataframe(cells: Sequence[Cell],
                          crs=None,
                          values: Optional[CountMap] = None,
                          value_name: str = 'value',
                          only_in_boundary: bool = False) -> gpd.GeoDataFrame:
    """
    Build a GeoDataFrame of cell geometries, optionally with one value per cell.

    Parameters
    ----------
    cells : sequence of Cell
    crs : optional
        CRS to attach (usually `grid_spec.crs`).
    values : mapping cell_id -> value, optional
        E.g. a count map or fitted intensities. Cells without a value get NaN.
    value_name : str
        Column name for `values`.
    only_in_boundary : bool
        If True, drop cells outside the boundary.

    Returns
    -------
    gpd.GeoDataFrame
        Indexed by cell_id with columns row, col, in_boundary, geometry
        (and `value_name` if values were given).

    Examples
    --------
    >>> counts = count_events(spec, events, t=1)
    >>> gdf = cells_to_geodataframe(cells, crs=spec.crs, values=counts, value_name='count')
    >>> gdf.plot(column='count')
    """
    if only_in_boundary:
        cells = [c for c in cells if c.in_boundary]

    gdf = gpd.GeoDataFrame(
        {
            'cell_id': [c.id for c in cells],
            'row': [c.row for c in cells],
            'col': [c.col for c in cells],
            'in_boundary': [c.in_boundary for c in cells],
        },
        geometry=[c.geometry for c in cells],
        crs=crs,
    ).set_index('cell_id')

    if values is not None:
        values = values if isinstance(values, pd.Series) else pd.Series(dict(values))
        gdf[value_name] = values.reindex(gdf.index).to_numpy()

    return gdf
