"""
grid - Grid discretization of spatio-temporal point patterns

Modules
-------
indexer : Grid skeleton
    GridSpec, Cell, build_grid, check_cells
counting : Per-slice point counts
    PointEvent, locate_cells, count_events, count_timeslices
stacking : Time-stacked observation table
    CellObservation, stack_timeslices, observations_to_frame,
    cells_to_geodataframe
adjacency : Cell contiguity graph
    GridAdjacency, build_grid_adjacency
pipeline : End-to-end wrapper
    GridIndexer

Typical workflow
----------------
>>> from pointgrid.spatial import grid
>>>
>>> # 1. Build the grid once
>>> spec, cells = grid.build_grid(boundary, resolution=5)
>>>
>>> # 2. Count each time slice against the same grid
>>> per_t = grid.count_timeslices(spec, events, n_jobs=4)
>>>
>>> # 3. Stack into the regression table
>>> obs = grid.stack_timeslices(spec, cells, per_t)
>>> table = grid.observations_to_frame(obs)
"""

from .indexer import (
    Cell,
    GridSpec,
    build_grid,
    check_cells,
)
from .counting import (
    PointEvent,
    count_events,
    count_timeslices,
    locate_cells,
)
from .stacking import (
    CellObservation,
    cells_to_geodataframe,
    observations_to_frame,
    stack_timeslices,
)
from .adjacency import (
    GridAdjacency,
    build_grid_adjacency,
)
from .pipeline import GridIndexer

__all__ = [
    # Indexer
    "GridSpec",
    "Cell",
    "build_grid",
    "check_cells",
    # Counting
    "PointEvent",
    "locate_cells",
    "count_events",
    "count_timeslices",
    # Stacking
    "CellObservation",
    "stack_timeslices",
    "observations_to_frame",
    "cells_to_geodataframe",
    # Adjacency
    "GridAdjacency",
    "build_grid_adjacency",
    # Pipeline
    "GridIndexer",
]
