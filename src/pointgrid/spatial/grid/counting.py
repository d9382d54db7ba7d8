"""
counting.py - Per-time-slice point counts on a grid

Bins timestamped point events into the cells of a GridSpec.

Binning convention: each cell is half-open on both axes, [x0, x1) × [y0, y1),
where the edges are the same floating point values used to build the cell
boxes in indexer.py. A point on an interior edge therefore belongs to the cell
to its right (x) or above it (y). The grid's outermost right and top edges
are closed, so every point of the closed grid extent (including the
boundary's top edge, where the grid is anchored) lands in a cell. Points
outside the extent are dropped.
"""
from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from pointgrid.data.config import GridConfig, NoEventsInWindow, ValidationError
from .indexer import GridSpec

EventsLike = Union[pd.DataFrame, Sequence['PointEvent'], np.ndarray]


@dataclass(frozen=True)
class PointEvent:
    """A single observation at (x, y) in time slice t."""
    x: float
    y: float
    t: int


def _events_to_arrays(events: EventsLike,
                      config: Optional[GridConfig] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Coerce supported event containers to (x, y, t) arrays."""
    config = config or GridConfig()

    if isinstance(events, pd.DataFrame):
        x_col, y_col = config.get_coordinate_columns()
        missing = [c for c in (x_col, y_col, config.time_col) if c not in events.columns]
        if missing:
            raise ValidationError(f"Event table is missing columns: {missing}")
        return (events[x_col].to_numpy(dtype=np.float64),
                events[y_col].to_numpy(dtype=np.float64),
                events[config.time_col].to_numpy())

    if isinstance(events, np.ndarray):
        if events.ndim != 2 or events.shape[1] != 3:
            raise ValidationError(f"Event array must have shape (n, 3), got {events.shape}")
        return (events[:, 0].astype(np.float64),
                events[:, 1].astype(np.float64),
                events[:, 2])

    events = list(events)
    if len(events) == 0:
        return np.empty(0), np.empty(0), np.empty(0, dtype=np.int64)
    if not isinstance(events[0], PointEvent):
        # plain (x, y, t) tuples
        return _events_to_arrays(np.asarray(events, dtype=np.float64), config)
    return (np.fromiter((e.x for e in events), dtype=np.float64, count=len(events)),
            np.fromiter((e.y for e in events), dtype=np.float64, count=len(events)),
            np.fromiter((e.t for e in events), dtype=np.int64, count=len(events)))


def locate_cells(grid_spec: GridSpec,
                 x: Union[np.ndarray, Sequence[float]],
                 y: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """
    Map point coordinates to cell ids.

    Parameters
    ----------
    grid_spec : GridSpec
    x, y : array-like
        Point coordinates in the grid's coordinate system.

    Returns
    -------
    np.ndarray of int64
        Cell id per point, or 0 for points outside the grid extent
        (and for NaN coordinates).
    """
    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    y = np.atleast_1d(np.asarray(y, dtype=np.float64))
    if x.shape != y.shape:
        raise ValueError(f"x and y have different shapes: {x.shape} vs {y.shape}")

    xs = grid_spec.col_edges()
    ys = grid_spec.row_edges()

    # col: xs[col] <= x < xs[col + 1]
    col = np.searchsorted(xs, x, side='right') - 1
    # row: ys[row + 1] <= y < ys[row]; ys is descending, search on -ys
    row = np.searchsorted(-ys, -y, side='left') - 1

    # outermost right and top edges are closed, like the last numpy.histogram bin
    col[x == xs[-1]] = grid_spec.n_cols - 1
    row[y == ys[0]] = 0

    valid = (
        np.isfinite(x) & np.isfinite(y)
        & (col >= 0) & (col < grid_spec.n_cols)
        & (row >= 0) & (row < grid_spec.n_rows)
    )
    ids = np.zeros(len(x), dtype=np.int64)
    ids[valid] = row[valid] * grid_spec.n_cols + col[valid] + 1
    return ids


def count_events(grid_spec: GridSpec,
                 events: EventsLike,
                 t: int,
                 config: Optional[GridConfig] = None) -> pd.Series:
    """
    Count the events of one time slice per grid cell.

    Parameters
    ----------
    grid_spec : GridSpec
        Grid built by `build_grid`.
    events : DataFrame, sequence of PointEvent, or (n, 3) array
        Events for any number of slices; only those with time index `t`
        are counted. DataFrames use the column names in `config`.
    t : int
        Time slice to count.
    config : GridConfig, optional

    Returns
    -------
    pd.Series
        Count per cell id for every id in 1..n_cells (zeros included),
        named 'count'. `attrs['grid_spec']` holds the GridSpec and
        `attrs['t']` the slice.

    Warns
    -----
    NoEventsInWindow
        When no event of slice `t` falls inside the grid extent.
    """
    if not isinstance(grid_spec, GridSpec):
        raise TypeError(f"Expected GridSpec, got {type(grid_spec).__name__}")

    x, y, times = _events_to_arrays(events, config)
    in_slice = times == t
    ids = locate_cells(grid_spec, x[in_slice], y[in_slice])
    ids = ids[ids > 0]

    counts = np.bincount(ids, minlength=grid_spec.n_cells + 1)[1:]

    if len(ids) == 0:
        warnings.warn(
            f"No events in grid window for t={t}; slice counted as all zeros",
            NoEventsInWindow,
            stacklevel=2,
        )

    result = pd.Series(
        counts.astype(np.int64),
        index=pd.RangeIndex(1, grid_spec.n_cells + 1, name='cell_id'),
        name='count',
    )
    result.attrs['grid_spec'] = grid_spec
    result.attrs['t'] = t
    return result


def count_timeslices(grid_spec: GridSpec,
                     events: EventsLike,
                     times: Optional[Iterable[int]] = None,
                     n_jobs: Optional[int] = None,
                     config: Optional[GridConfig] = None) -> List[Tuple[int, pd.Series]]:
    """
    Run `count_events` for several time slices.

    Parameters
    ----------
    grid_spec : GridSpec
    events : DataFrame, sequence of PointEvent, or (n, 3) array
    times : iterable of int, optional
        Slices to count. If None, uses 1..max(t) so empty years in the
        middle of the series still produce an all-zero slice.
    n_jobs : int, optional
        Worker threads. None or 1 counts serially.
    config : GridConfig, optional

    Returns
    -------
    list of (t, pd.Series)
        Sorted by t, independent of worker completion order.
    """
    x, y, all_t = _events_to_arrays(events, config)

    if times is None:
        if len(all_t) == 0:
            raise ValidationError("No events supplied and no time slices requested")
        times = range(1, int(np.max(all_t)) + 1)
    times = sorted(set(int(t) for t in times))

    packed = np.column_stack([x, y, all_t]) if len(x) else np.empty((0, 3))

    def _count(t):
        return t, count_events(grid_spec, packed, t)

    if n_jobs is None or n_jobs <= 1 or len(times) <= 1:
        results = [_count(t) for t in times]
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as ex:
            futs = [ex.submit(_count, t) for t in times]
            results = [fut.result() for fut in futs]

    return sorted(results, key=lambda item: item[0])
