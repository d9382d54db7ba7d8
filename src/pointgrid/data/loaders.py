"""
loaders.py - Event and boundary loading for pointgrid

Reads point events and observation windows from DataFrames, GeoDataFrames or
files, applies region / year filters and derives the 1-based time index used
by the grid pipeline.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry.base import BaseGeometry

from .config import ColumnNotFoundError, GridConfig, ValidationError
from pointgrid.spatial.grid.counting import PointEvent

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_VECTOR_SUFFIXES = {'.geojson', '.json', '.gpkg', '.shp', '.fgb'}


class EventValidator:
    """Handles validation of event tables."""

    def __init__(self, config: GridConfig):
        self.config = config

    def validate_columns(self, df: pd.DataFrame,
                         required_cols: List[str],
                         df_name: str) -> bool:
        """Validate that required columns exist. Returns False if any are missing."""
        missing = [col for col in required_cols if col not in df.columns]

        if missing:
            if self.config.strict_validation:
                raise ColumnNotFoundError(missing[0], df_name)
            logger.warning(f"Missing columns in {df_name}: {missing}")
            return False
        return True

    def validate_not_empty(self, df: pd.DataFrame, stage: str) -> None:
        """Handle an event table that became empty after a filter."""
        if len(df) > 0:
            return
        msg = f"No events remain after {stage}"
        if self.config.strict_validation:
            raise ValidationError(msg)
        logger.warning(msg)


@dataclass
class EventTable:
    """Loaded events plus the year that maps to t = 1."""
    events: pd.DataFrame
    base_year: Optional[int]
    time_col: str = "t"

    @property
    def n_slices(self) -> int:
        t = self.events[self.time_col]
        return int(t.max()) if len(t) else 0

    def __len__(self) -> int:
        return len(self.events)


def assign_time_index(years, base_year: Optional[int] = None) -> np.ndarray:
    """
    Convert raw years to a 1-based time index.

    t = year - (base_year - 1), where base_year defaults to min(years).

    Parameters
    ----------
    years : array-like of int
    base_year : int, optional
        Year that becomes t = 1.

    Returns
    -------
    np.ndarray of int64

    Examples
    --------
    >>> assign_time_index([2014, 2016, 2015])
    array([1, 3, 2])
    """
    years = np.asarray(years)
    if years.size == 0:
        return np.empty(0, dtype=np.int64)
    if not np.issubdtype(years.dtype, np.number) or np.any(~np.isfinite(years.astype(np.float64))):
        raise ValidationError("Years must be finite numbers")
    if np.any(np.mod(years, 1) != 0):
        raise ValidationError("Years must be whole numbers")

    years = years.astype(np.int64)
    if base_year is None:
        base_year = int(years.min())
    t = years - (int(base_year) - 1)
    if np.any(t < 1):
        raise ValidationError(f"Years before base year {base_year} would get t < 1")
    return t


def _read_table(source: PathLike) -> pd.DataFrame:
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Event file '{path}' does not exist")

    suffix = path.suffix.lower()
    if suffix == '.csv':
        return pd.read_csv(path)
    if suffix in ('.parquet', '.pq'):
        return pd.read_parquet(path)
    if suffix in _VECTOR_SUFFIXES:
        return gpd.read_file(path)
    raise ValueError(f"Unsupported event file type: {suffix}")


def load_events(source: Union[pd.DataFrame, PathLike],
                config: Optional[GridConfig] = None,
                region: Optional[Union[str, int, List]] = None,
                year_range: Optional[Tuple[int, int]] = None,
                crs=None) -> EventTable:
    """
    Load point events and derive the time index.

    Parameters
    ----------
    source : DataFrame, GeoDataFrame or path
        Event table, or a .csv/.parquet/vector file. Point GeoDataFrames
        without x/y columns take coordinates from their geometry.
    config : GridConfig, optional
        Column names and validation mode.
    region : str, int or list, optional
        Keep only rows whose region column matches.
    year_range : (start, end), optional
        Inclusive year window. `start` becomes t = 1; without a window the
        earliest remaining year does.
    crs : optional
        Target CRS for GeoDataFrame input (reprojected before taking x/y).

    Returns
    -------
    EventTable
        `events` has the x, y, year and t columns (named per config).
    """
    config = config or GridConfig()
    validator = EventValidator(config)
    x_col, y_col = config.get_coordinate_columns()

    if isinstance(source, pd.DataFrame):
        df = source.copy()
    else:
        df = _read_table(source)
        logger.info(f"Read {len(df)} rows from '{source}'")

    if isinstance(df, gpd.GeoDataFrame):
        if crs is not None and df.crs is not None:
            df = df.to_crs(crs)
        if x_col not in df.columns or y_col not in df.columns or crs is not None:
            df[x_col] = df.geometry.x
            df[y_col] = df.geometry.y
        df = pd.DataFrame(df.drop(columns=df.geometry.name))

    required = [x_col, y_col, config.year_col]
    if not validator.validate_columns(df, required, 'events'):
        raise ColumnNotFoundError(
            next(c for c in required if c not in df.columns), 'events'
        )

    if region is not None:
        # a requested filter that cannot be applied is fatal even when lenient
        if config.region_col not in df.columns:
            raise ColumnNotFoundError(config.region_col, 'events')
        regions = region if isinstance(region, (list, tuple, set)) else [region]
        df = df[df[config.region_col].isin(regions)]
        validator.validate_not_empty(df, f"region filter {region!r}")

    if year_range is not None:
        start, end = year_range
        if start > end:
            raise ValueError(f"Invalid year range: {year_range}")
        df = df[(df[config.year_col] >= start) & (df[config.year_col] <= end)]
        validator.validate_not_empty(df, f"year filter {year_range}")

    coords_ok = df[x_col].notna() & df[y_col].notna() & df[config.year_col].notna()
    if not coords_ok.all():
        logger.warning(f"Dropping {int((~coords_ok).sum())} events with missing coordinates or year")
        df = df[coords_ok]

    df = df.reset_index(drop=True)

    if len(df) == 0:
        df[config.time_col] = pd.Series(dtype='int64')
        return EventTable(events=df, base_year=year_range[0] if year_range else None,
                          time_col=config.time_col)

    base_year = int(year_range[0]) if year_range is not None else int(df[config.year_col].min())
    df[config.time_col] = assign_time_index(df[config.year_col].to_numpy(), base_year=base_year)

    logger.info(
        f"Loaded {len(df)} events over {int(df[config.time_col].max())} time slice(s) "
        f"(base year {base_year})"
    )
    return EventTable(events=df, base_year=base_year, time_col=config.time_col)


def events_from_frame(df: pd.DataFrame,
                      config: Optional[GridConfig] = None) -> List[PointEvent]:
    """Convert an event table with x, y and t columns to PointEvents."""
    config = config or GridConfig()
    x_col, y_col = config.get_coordinate_columns()
    for col in (x_col, y_col, config.time_col):
        if col not in df.columns:
            raise ColumnNotFoundError(col, 'events')

    return [
        PointEvent(x=float(x), y=float(y), t=int(t))
        for x, y, t in zip(df[x_col], df[y_col], df[config.time_col])
    ]


def load_boundary(source: Union[BaseGeometry, gpd.GeoDataFrame, gpd.GeoSeries, PathLike],
                  config: Optional[GridConfig] = None,
                  region: Optional[Union[str, int, List]] = None,
                  crs=None) -> gpd.GeoDataFrame:
    """
    Load an observation window and dissolve it into a single geometry.

    Parameters
    ----------
    source : shapely geometry, GeoDataFrame, GeoSeries or path
        Boundary polygons, or a vector file readable by geopandas.
    config : GridConfig, optional
        Supplies the region column name.
    region : str, int or list, optional
        Keep only features whose region column matches before dissolving.
    crs : optional
        Target CRS. Reprojects when the source has a CRS, otherwise assigns it.

    Returns
    -------
    gpd.GeoDataFrame
        One row holding the dissolved (multi-)polygon.
    """
    config = config or GridConfig()

    if isinstance(source, BaseGeometry):
        gdf = gpd.GeoDataFrame(geometry=[source], crs=None)
    elif isinstance(source, gpd.GeoSeries):
        gdf = gpd.GeoDataFrame(geometry=source)
    elif isinstance(source, gpd.GeoDataFrame):
        gdf = source
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Boundary file '{path}' does not exist")
        gdf = gpd.read_file(path)
        logger.info(f"Read {len(gdf)} boundary features from '{path}'")

    if region is not None:
        if config.region_col not in gdf.columns:
            raise ColumnNotFoundError(config.region_col, 'boundary')
        regions = region if isinstance(region, (list, tuple, set)) else [region]
        gdf = gdf[gdf[config.region_col].isin(regions)]
        if len(gdf) == 0:
            raise ValidationError(f"No boundary features match region {region!r}")

    if crs is not None:
        gdf = gdf.to_crs(crs) if gdf.crs is not None else gdf.set_crs(crs)

    invalid = ~gdf.geometry.is_valid
    if invalid.any():
        logger.warning(f"Repairing {int(invalid.sum())} invalid boundary geometries")
        gdf = gdf.copy()
        gdf.loc[invalid, gdf.geometry.name] = gdf.geometry[invalid].make_valid()

    return gpd.GeoDataFrame(geometry=[gdf.geometry.union_all()], crs=gdf.crs)
