# src/pointgrid/__init__.py

"""
pointgrid - Grid discretization of spatio-temporal point patterns
"""

# Core configuration and errors
from .data.config import (
    GridConfig,
    PointGridError,
    InvalidResolution,
    EmptyBoundary,
    MisalignedGridReuse,
    ValidationError,
    ColumnNotFoundError,
    NoEventsInWindow,
)
from .data.loaders import load_events, load_boundary, assign_time_index, events_from_frame

# Grid pipeline
from .spatial.grid import (
    GridSpec,
    Cell,
    PointEvent,
    CellObservation,
    GridIndexer,
    build_grid,
    count_events,
    count_timeslices,
    stack_timeslices,
    observations_to_frame,
)

# Import submodules
from . import data
from . import spatial

__version__ = '0.1.0'

__all__ = [
    # Config and errors
    'GridConfig',
    'PointGridError',
    'InvalidResolution',
    'EmptyBoundary',
    'MisalignedGridReuse',
    'ValidationError',
    'ColumnNotFoundError',
    'NoEventsInWindow',

    # Loading
    'load_events',
    'load_boundary',
    'assign_time_index',
    'events_from_frame',

    # Grid pipeline
    'GridSpec',
    'Cell',
    'PointEvent',
    'CellObservation',
    'GridIndexer',
    'build_grid',
    'count_events',
    'count_timeslices',
    'stack_timeslices',
    'observations_to_frame',

    # Submodules
    'data',
    'spatial',
]
