#!/usr/bin/env python3
"""
Unit tests for relative elevation (relative_elevation.py)
"""

import numpy as np
import pytest
import rasterio

from lspwrapper.exceptions import DEMError, ValidationError
from lspwrapper.relative_elevation import (
    SAGA_NODATA,
    compute_relative_elevation,
    relative_elevation,
    window_size,
)


class TestWindowSize:
    """Test cases for radius to window conversion"""

    def test_even_window_made_odd(self):
        """50 m at 10 m cells gives 10 pixels, bumped to 11"""
        assert window_size(50, 10) == 11

    def test_odd_window_kept(self):
        assert window_size(25, 10) == 5

    def test_rounds_half_to_even(self):
        """2.5 rounds to 2, which becomes 3"""
        assert window_size(12.5, 10) == 3

    def test_small_radius_gives_single_cell(self):
        assert window_size(1, 10) == 1

    def test_always_odd(self):
        for radius in [1, 5, 10, 15, 33, 50, 75, 100, 250]:
            for resolution in [0.5, 1, 2, 5, 10, 25]:
                assert window_size(radius, resolution) % 2 == 1

    def test_invalid_radius(self):
        with pytest.raises(ValidationError):
            window_size(0, 10)

    def test_invalid_resolution(self):
        with pytest.raises(ValidationError):
            window_size(50, 0)


class TestRelativeElevation:
    """Test cases for the focal minimum filter"""

    def test_ramp(self):
        """On a ramp every interior cell sits 6 above its 3x3 minimum"""
        dem = np.arange(25, dtype=np.float64).reshape(5, 5)

        result = relative_elevation(dem, 3)

        np.testing.assert_allclose(result[1:4, 1:4], 6.0)

    def test_edges_are_nodata(self):
        """Windows reaching past the grid edge have no value"""
        dem = np.arange(25, dtype=np.float64).reshape(5, 5)

        result = relative_elevation(dem, 3)

        assert np.isnan(result[0, :]).all()
        assert np.isnan(result[-1, :]).all()
        assert np.isnan(result[:, 0]).all()
        assert np.isnan(result[:, -1]).all()

    def test_nodata_spreads_over_window(self):
        """Cells whose window contains nodata have no value"""
        dem = np.full((7, 7), 10.0)
        dem[1, 1] = -9999.0

        result = relative_elevation(dem, 3, nodata=-9999.0)

        assert np.isnan(result[1:3, 1:3]).all()
        assert result[4, 4] == 0.0

    def test_nan_cells_treated_as_nodata(self):
        dem = np.full((7, 7), 10.0)
        dem[5, 5] = np.nan

        result = relative_elevation(dem, 3)

        assert np.isnan(result[4, 4])
        assert result[2, 2] == 0.0

    def test_single_cell_window_is_zero(self):
        dem = np.random.default_rng(1).uniform(0, 100, (6, 6))

        result = relative_elevation(dem, 1)

        np.testing.assert_allclose(result, 0.0)

    def test_non_negative(self):
        dem = np.random.default_rng(42).uniform(0, 500, (30, 30))

        result = relative_elevation(dem, 5)

        valid = result[~np.isnan(result)]
        assert valid.size > 0
        assert (valid >= 0).all()

    def test_pit_is_zero(self):
        """The lowest cell in its window has relative elevation 0"""
        dem = np.full((5, 5), 50.0)
        dem[2, 2] = 20.0

        result = relative_elevation(dem, 3)

        assert result[2, 2] == 0.0
        assert result[1, 1] == 30.0

    def test_invalid_window(self):
        with pytest.raises(ValidationError):
            relative_elevation(np.zeros((5, 5)), 4)


class TestComputeRelativeElevation:
    """Test cases for the file-based computation"""

    def test_writes_saga_grid(self, sample_dem, workspace):
        """Output is a SAGA grid in the workspace with the DEM georeferencing"""
        out_path = compute_relative_elevation(sample_dem, 20, "rel_20", workspace)

        assert out_path == workspace / "rel_20.sgrd"
        assert out_path.exists()
        assert (workspace / "rel_20.sdat").exists()

        with rasterio.open(workspace / "rel_20.sdat") as src, rasterio.open(sample_dem) as dem_src:
            data = src.read(1)
            assert data.shape == (20, 20)
            assert src.nodata == SAGA_NODATA
            assert src.transform.almost_equals(dem_src.transform)
            dem = dem_src.read(1).astype(np.float64)

        # 20 m radius at 10 m cells: 5x5 window
        expected = relative_elevation(dem, 5)
        valid = ~np.isnan(expected)
        np.testing.assert_allclose(data[valid], expected[valid], rtol=1e-5)
        assert (data[~valid] == SAGA_NODATA).all()

    def test_name_with_header_extension(self, sample_dem, workspace):
        out_path = compute_relative_elevation(sample_dem, 20, "rel_20.sgrd", workspace)

        assert out_path == workspace / "rel_20.sgrd"
        assert (workspace / "rel_20.sdat").exists()
        assert not list(workspace.glob("rel_20.sgrd.*"))

    def test_missing_dem(self, tmp_path, workspace):
        with pytest.raises(DEMError):
            compute_relative_elevation(tmp_path / "missing.tif", 50, "rel", workspace)

    def test_invalid_radius(self, sample_dem, workspace):
        with pytest.raises(ValidationError):
            compute_relative_elevation(sample_dem, -5, "rel", workspace)
