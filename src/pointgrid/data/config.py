"""
config.py - Configuration and error types for pointgrid

Contains:
- GridConfig: Column names and pipeline settings
- PointGridError and subclasses: Fatal grid/data errors
- NoEventsInWindow: Warning for empty time slices
"""

from dataclasses import dataclass


@dataclass
class GridConfig:
    """Configuration for pointgrid column names and settings."""

    # Column names
    x_col: str = "x"
    y_col: str = "y"
    year_col: str = "year"
    time_col: str = "t"
    region_col: str = "region"
    cell_id_col: str = "cell_id"

    # Validation settings
    strict_validation: bool = False  # If True, raise errors instead of warnings

    # Processing settings
    n_jobs: int | None = None  # Worker threads for per-slice work (None = serial)
    contiguity: str = "rook"

    def get_coordinate_columns(self) -> tuple[str, str]:
        """
        Get x, y column names.

        Returns
        -------
        Tuple[str, str]
            (x_column, y_column)
        """
        return self.x_col, self.y_col


class PointGridError(Exception):
    """Base exception for pointgrid errors."""

    pass


class InvalidResolution(PointGridError):
    """Raised when the cell resolution is non-positive or exceeds the boundary extent."""

    def __init__(self, resolution, reason: str):
        self.resolution = resolution
        super().__init__(f"Invalid resolution {resolution!r}: {reason}")


class EmptyBoundary(PointGridError):
    """Raised when the boundary polygon is missing, empty or degenerate."""

    pass


class MisalignedGridReuse(PointGridError):
    """Raised when cells or counts do not belong to the GridSpec they are used with."""

    pass


class ValidationError(PointGridError):
    """Raised when input data validation fails."""

    pass


class ColumnNotFoundError(PointGridError):
    """Raised when a required column is missing."""

    def __init__(self, column: str, dataframe_name: str):
        self.column = column
        self.dataframe_name = dataframe_name
        super().__init__(f"Column '{column}' not found in {dataframe_name}")


class NoEventsInWindow(UserWarning):
    """Issued when a time slice has no events inside the grid extent."""

    pass
