"""
LSPWRAPPER Relative Elevation
=============================

Relative elevation: height of each cell above the lowest cell in a
square moving window. This is the only land surface parameter computed
in-process rather than by SAGA.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import rasterio
from rasterio.errors import RasterioError, RasterioIOError
from scipy.ndimage import maximum_filter, minimum_filter

from .exceptions import DEMError, ValidationError
from .saga import grid_file, grid_name

logger = logging.getLogger(__name__)

SAGA_NODATA = -99999.0


def window_size(radius: float, resolution: float) -> int:
    """
    Window size in pixels for a radius in map units.

    The window spans twice the radius, rounded half to even, and is
    forced to an odd number of pixels.

    Args:
        radius: Radius in map units
        resolution: Cell size in map units

    Returns:
        Odd window size (>= 1)
    """
    if resolution <= 0:
        raise ValidationError(f"Invalid resolution: {resolution}")
    if radius <= 0:
        raise ValidationError(f"Radius must be positive, got {radius}")

    size = int(round(2 * (radius / resolution)))
    if size % 2 == 0:
        size += 1
    return size


def relative_elevation(
    dem: np.ndarray, window: int, nodata: Optional[float] = None
) -> np.ndarray:
    """
    Subtract the focal minimum from each cell.

    Cells whose window touches nodata or reaches past the grid edge
    have no defined minimum and come back as NaN.

    Args:
        dem: 2D elevation array
        window: Odd window size in pixels
        nodata: Optional nodata value in ``dem``

    Returns:
        Float64 array of relative elevation
    """
    if dem.ndim != 2:
        raise ValidationError(f"DEM must be 2D, got shape {dem.shape}")
    if window < 1 or window % 2 == 0:
        raise ValidationError(f"Window size must be a positive odd number, got {window}")

    elevation = dem.astype(np.float64)
    invalid = ~np.isfinite(elevation)
    if nodata is not None:
        invalid |= elevation == nodata

    # Outside the grid counts as invalid
    touches_invalid = (
        maximum_filter(
            invalid.astype(np.uint8), size=window, mode="constant", cval=1
        )
        > 0
    )

    filled = np.where(invalid, np.inf, elevation)
    minimum = minimum_filter(filled, size=window, mode="nearest")

    result = elevation - minimum
    result[touches_invalid] = np.nan
    return result


def compute_relative_elevation(
    in_dem: Union[str, Path],
    radius: float,
    out_name: str,
    workspace: Union[str, Path] = ".",
) -> Path:
    """
    Compute relative elevation from a DEM file and write it as a SAGA grid.

    Args:
        in_dem: Path to any GDAL-readable DEM
        radius: Window radius in map units
        out_name: Output grid name, with or without ``.sgrd``
        workspace: Directory the grid is written to

    Returns:
        Path to the written ``.sgrd`` header

    Raises:
        DEMError: If the DEM cannot be read or the grid cannot be written
        ValidationError: If the radius is invalid
    """
    try:
        with rasterio.open(in_dem) as src:
            dem = src.read(1)
            nodata = src.nodata
            crs = src.crs
            transform = src.transform
            resolution = abs(src.bounds.right - src.bounds.left) / src.width
    except RasterioIOError as e:
        raise DEMError(f"Failed to load DEM from {in_dem}: {e}")

    size = window_size(radius, resolution)
    logger.info(
        f"Relative elevation with radius {radius} "
        f"({size}x{size} pixels at {resolution:g} resolution)"
    )

    result = relative_elevation(dem, size, nodata)
    out_data = np.where(np.isnan(result), SAGA_NODATA, result).astype(np.float32)

    workspace = Path(workspace)
    workspace.mkdir(parents=True, exist_ok=True)
    sdat_path = workspace / f"{grid_name(out_name)}.sdat"

    try:
        with rasterio.open(
            sdat_path,
            "w",
            driver="SAGA",
            height=out_data.shape[0],
            width=out_data.shape[1],
            count=1,
            dtype="float32",
            crs=crs,
            transform=transform,
            nodata=SAGA_NODATA,
        ) as dst:
            dst.write(out_data, 1)
    except RasterioError as e:
        raise DEMError(f"Failed to write relative elevation to {sdat_path}: {e}")

    return workspace / grid_file(out_name)
