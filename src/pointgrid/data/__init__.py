"""
data - Configuration, error types and input loading for pointgrid
"""

from .config import (
    GridConfig,
    PointGridError,
    InvalidResolution,
    EmptyBoundary,
    MisalignedGridReuse,
    ValidationError,
    ColumnNotFoundError,
    NoEventsInWindow,
)
from .loaders import (
    EventTable,
    EventValidator,
    assign_time_index,
    events_from_frame,
    load_boundary,
    load_events,
)

__all__ = [
    'GridConfig',
    'PointGridError',
    'InvalidResolution',
    'EmptyBoundary',
    'MisalignedGridReuse',
    'ValidationError',
    'ColumnNotFoundError',
    'NoEventsInWindow',
    'EventTable',
    'EventValidator',
    'assign_time_index',
    'events_from_frame',
    'load_boundary',
    'load_events',
]
