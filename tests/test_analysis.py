"""
test_analysis.py - Test suite for event loading and intensity summaries

How to run:
    pytest tests/test_analysis.py -v
    pytest tests/ -v -k "LoadEvents"

Sections
--------
1. assign_time_index / load_events / events_from_frame
2. load_boundary
3. quadrat_intensity / quadrat_test / kernel_intensity
"""

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Polygon, box

from conftest import L_INSIDE_IDS
from pointgrid.data.config import ColumnNotFoundError, GridConfig, ValidationError
from pointgrid.data.loaders import (
    assign_time_index,
    events_from_frame,
    load_boundary,
    load_events,
)
from pointgrid.spatial.grid import (
    GridIndexer,
    PointEvent,
    build_grid,
    observations_to_frame,
    stack_timeslices,
)
from pointgrid.spatial.point import kernel_intensity, quadrat_intensity, quadrat_test


# ===========================================================================
# SECTION 1 — Events and the time index
#
# Goal: raw calendar years become a 1-based slice index, filters apply
# before the index is derived, and rows without coordinates never reach
# the counter.
# ===========================================================================


class TestAssignTimeIndex:

    def test_default_base_is_earliest_year(self):
        assert assign_time_index([2014, 2016, 2015]).tolist() == [1, 3, 2]

    def test_explicit_base_year(self):
        assert assign_time_index([2015, 2016], base_year=2014).tolist() == [2, 3]

    def test_whole_float_years_accepted(self):
        assert assign_time_index(np.array([2014.0, 2015.0])).tolist() == [1, 2]

    def test_empty(self):
        assert len(assign_time_index([])) == 0

    @pytest.mark.parametrize("years, base_year", [
        ([2014, 2015], 2015),       # 2014 would become t = 0
        ([2014.5], None),
        (["2014"], None),
        ([2014, np.nan], None),
    ])
    def test_invalid(self, years, base_year):
        with pytest.raises(ValidationError):
            assign_time_index(years, base_year=base_year)


class TestLoadEvents:

    # -----------------------------------------------------------------------
    # (a) Happy path
    # -----------------------------------------------------------------------

    def test_time_index_from_min_year(self, raw_events):
        table = load_events(raw_events)
        assert table.base_year == 2014
        assert (table.events['t'] == table.events['year'] - 2013).all()
        assert table.n_slices == 4

    def test_row_without_coordinates_dropped(self, raw_events, caplog):
        with caplog.at_level(logging.WARNING, logger="pointgrid.data.loaders"):
            table = load_events(raw_events)
        assert len(table) == 6
        assert "missing coordinates" in caplog.text

    def test_region_filter(self, raw_events):
        table = load_events(raw_events, region="A")
        assert set(table.events['region']) == {"A"}
        assert len(table) == 4

    def test_region_list_filter(self, raw_events):
        assert len(load_events(raw_events, region=["A", "B"])) == 6

    def test_year_range_sets_base_year(self, raw_events):
        """The first year of the window is t = 1 even if filtered rows remain."""
        table = load_events(raw_events, year_range=(2015, 2016))
        assert table.base_year == 2015
        assert sorted(table.events['t'].unique()) == [1, 2]
        assert len(table) == 4

    def test_year_range_start_without_events(self, raw_events):
        """Base year comes from the window, not the data: 2013 → t = 1, 2014 → t = 2."""
        table = load_events(raw_events, year_range=(2013, 2014))
        assert table.events['t'].tolist() == [2]

    def test_custom_columns(self, raw_events):
        cfg = GridConfig(x_col="lon", y_col="lat", year_col="yr")
        renamed = raw_events.rename(columns={"x": "lon", "y": "lat", "year": "yr"})
        table = load_events(renamed, config=cfg)
        assert len(table) == 6
        assert "t" in table.events.columns

    def test_geodataframe_input(self, raw_events):
        clean = raw_events.dropna()
        gdf = gpd.GeoDataFrame(
            clean[["year", "region"]],
            geometry=gpd.points_from_xy(clean["x"], clean["y"]),
            crs="EPSG:3857",
        )
        table = load_events(gdf)
        assert table.events['x'].tolist() == clean['x'].tolist()
        assert "geometry" not in table.events.columns

    def test_csv_file(self, raw_events, tmp_path):
        path = tmp_path / "events.csv"
        raw_events.to_csv(path, index=False)
        table = load_events(path, region="B")
        assert table.events['year'].tolist() == [2017, 2016]
        assert table.events['t'].tolist() == [2, 1]

    def test_feeds_grid_pipeline(self, raw_events, square):
        """Loaded events go straight into GridIndexer.run."""
        table = load_events(raw_events)
        result = GridIndexer(square, 5).run(table.events)
        assert result['count'].sum() == 6
        assert result['t'].max() == table.n_slices

    # -----------------------------------------------------------------------
    # (b) Error handling
    # -----------------------------------------------------------------------

    def test_missing_year_column(self, raw_events):
        with pytest.raises(ColumnNotFoundError):
            load_events(raw_events.drop(columns="year"))

    def test_region_filter_without_region_column(self, raw_events):
        """
        A region filter that cannot be applied must not fall back to
        returning every region's events, even in lenient mode.
        """
        renamed = raw_events.rename(columns={"region": "code"})
        with pytest.raises(ColumnNotFoundError) as exc_info:
            load_events(renamed, region="A")
        assert exc_info.value.column == "region"

    def test_region_column_not_needed_without_filter(self, raw_events):
        assert len(load_events(raw_events.drop(columns="region"))) == 6

    def test_empty_after_filter_lenient(self, raw_events):
        table = load_events(raw_events, year_range=(2020, 2021))
        assert len(table) == 0
        assert table.n_slices == 0

    def test_empty_after_filter_strict(self, raw_events):
        cfg = GridConfig(strict_validation=True)
        with pytest.raises(ValidationError):
            load_events(raw_events, config=cfg, year_range=(2020, 2021))

    def test_inverted_year_range(self, raw_events):
        with pytest.raises(ValueError):
            load_events(raw_events, year_range=(2016, 2014))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_events(tmp_path / "nope.csv")

    def test_unsupported_file(self, tmp_path):
        path = tmp_path / "events.txt"
        path.write_text("x,y,year\n")
        with pytest.raises(ValueError):
            load_events(path)


class TestEventsFromFrame:

    def test_point_events(self, raw_events):
        events = events_from_frame(load_events(raw_events).events)
        assert events[0] == PointEvent(1.0, 1.0, 1)
        assert all(isinstance(e.t, int) for e in events)

    def test_missing_time_column(self, raw_events):
        with pytest.raises(ColumnNotFoundError):
            events_from_frame(raw_events)


# ===========================================================================
# SECTION 2 — load_boundary
# ===========================================================================


@pytest.fixture
def regions_gdf():
    """Two adjacent 5×10 regions that together form the 10×10 square."""
    return gpd.GeoDataFrame(
        {"region": ["A", "B"]},
        geometry=[box(0, 0, 5, 10), box(5, 0, 10, 10)],
        crs="EPSG:3857",
    )


class TestLoadBoundary:

    def test_dissolves_to_one_row(self, regions_gdf):
        boundary = load_boundary(regions_gdf)
        assert len(boundary) == 1
        assert boundary.geometry.iloc[0].area == pytest.approx(100.0)
        assert boundary.crs.to_epsg() == 3857

    def test_region_filter(self, regions_gdf):
        boundary = load_boundary(regions_gdf, region="B")
        assert boundary.geometry.iloc[0].bounds == (5.0, 0.0, 10.0, 10.0)

    def test_region_no_match(self, regions_gdf):
        with pytest.raises(ValidationError):
            load_boundary(regions_gdf, region="Z")

    def test_region_column_missing(self, square):
        with pytest.raises(ColumnNotFoundError):
            load_boundary(square, region="A")

    def test_geometry_input_assigns_crs(self, square):
        boundary = load_boundary(square, crs="EPSG:32633")
        assert boundary.crs.to_epsg() == 32633

    def test_reprojects(self, regions_gdf):
        boundary = load_boundary(regions_gdf, crs="EPSG:4326")
        assert boundary.crs.to_epsg() == 4326

    def test_repairs_invalid_geometry(self):
        bowtie = Polygon([(0, 0), (2, 2), (2, 0), (0, 2)])
        assert not bowtie.is_valid
        boundary = load_boundary(bowtie)
        geom = boundary.geometry.iloc[0]
        assert geom.is_valid
        assert geom.area == pytest.approx(2.0)

    def test_vector_file(self, regions_gdf, tmp_path):
        path = tmp_path / "regions.geojson"
        regions_gdf.to_file(path, driver="GeoJSON")
        boundary = load_boundary(path, region="A")
        assert boundary.geometry.iloc[0].area == pytest.approx(50.0)

    def test_feeds_build_grid(self, regions_gdf):
        spec, cells = build_grid(load_boundary(regions_gdf), 5)
        assert spec.shape == (2, 2)
        assert spec.crs.to_epsg() == 3857


# ===========================================================================
# SECTION 3 — Intensity summaries
#
# Goal: the first-order summaries read the stacked table (or the grid)
# without re-deriving cell geometry, and label clear-cut patterns
# correctly.
# ===========================================================================


def _table(spec, cells, per_t):
    return observations_to_frame(stack_timeslices(spec, cells, per_t))


class TestQuadratIntensity:

    def test_count_over_area(self, square, example_events):
        table = GridIndexer(square, 5).run(example_events)
        result = quadrat_intensity(table)
        assert result['intensity'].tolist() == pytest.approx([0.04, 0.0, 0.04, 0.04])
        assert 'intensity' not in table.columns

    def test_missing_columns(self):
        with pytest.raises(ValueError):
            quadrat_intensity(pd.DataFrame({'count': [1]}))


class TestQuadratTest:

    def test_clustered(self, square):
        """All 50 events in one of 25 cells: variance ≫ mean."""
        spec, cells = build_grid(square, 2)
        table = _table(spec, cells, [(1, {21: 50})])
        result = quadrat_test(table)
        row = result.loc[1]
        assert row['n_cells'] == 25
        assert row['n_events'] == 50
        assert row['chi2'] == pytest.approx(1200.0)
        assert row['dispersion'] > 1
        assert row['pattern'] == 'clustered'

    def test_regular(self, square):
        """Exactly two events per cell: variance 0."""
        spec, cells = build_grid(square, 2)
        table = _table(spec, cells, [(1, {c.id: 2 for c in cells})])
        row = quadrat_test(table).loc[1]
        assert row['variance'] == 0
        assert row['pattern'] == 'regular'

    def test_random_pattern_not_rejected(self, square):
        rng = np.random.default_rng(7)
        events = pd.DataFrame({
            'x': rng.uniform(0, 10, 500),
            'y': rng.uniform(0, 10, 500),
            't': 1,
        })
        table = GridIndexer(square, 2).run(events)
        row = quadrat_test(table, alpha=0.001).loc[1]
        assert row['pattern'] == 'csr'
        assert 0 < row['pvalue'] <= 1

    def test_empty_slice_undefined(self, square):
        spec, cells = build_grid(square, 2)
        result = quadrat_test(_table(spec, cells, [(1, {1: 3}), (2, {})]))
        assert list(result.index) == [1, 2]
        assert result.loc[2, 'pattern'] == 'undefined'
        assert np.isnan(result.loc[2, 'pvalue'])

    def test_missing_columns(self):
        with pytest.raises(ValueError):
            quadrat_test(pd.DataFrame({'count': [1, 2]}))


class TestKernelIntensity:

    def test_integrates_to_event_count(self, square):
        """
        Events well inside the window: summing intensity × cell area over
        the grid recovers (approximately) the number of events.
        """
        spec, cells = build_grid(square, 1)
        rng = np.random.default_rng(3)
        x = rng.uniform(3, 7, 200)
        y = rng.uniform(3, 7, 200)
        intensity = kernel_intensity(spec, cells, x, y)
        total = (intensity * spec.cell_area).sum()
        assert 0.9 * 200 < total < 1.1 * 200

    def test_higher_where_events_are(self, square):
        spec, cells = build_grid(square, 1)
        rng = np.random.default_rng(4)
        x = rng.normal(2.5, 0.5, 100)
        y = rng.normal(7.5, 0.5, 100)
        intensity = kernel_intensity(spec, cells, x, y)
        # cell containing (2.5, 7.5) vs the opposite corner
        assert intensity.loc[spec.cell_id(2, 2)] > intensity.loc[spec.cell_id(9, 9)]

    def test_indexed_by_in_boundary_ids(self, l_grid):
        spec, cells = l_grid
        intensity = kernel_intensity(spec, cells, [1, 2, 3], [1, 3, 2])
        assert list(intensity.index) == L_INSIDE_IDS
        assert intensity.name == 'intensity'
        assert (intensity > 0).all()

    def test_too_few_events(self, square_grid):
        spec, cells = square_grid
        with pytest.raises(ValueError):
            kernel_intensity(spec, cells, [1.0], [1.0])

    def test_degenerate_events(self, square_grid):
        spec, cells = square_grid
        with pytest.raises(ValueError):
            kernel_intensity(spec, cells, [1.0, 2.0, 3.0], [1.0, 1.0, 1.0])
