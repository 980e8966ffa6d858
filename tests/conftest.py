#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures for LSPWRAPPER tests
"""

import warnings
from pathlib import Path
from typing import Dict, List, Tuple
from unittest.mock import Mock, patch

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from lspwrapper.saga import SagaEnvironment

# Suppress common deprecation warnings for cleaner test output
warnings.filterwarnings("ignore", category=DeprecationWarning, module="rasterio")


@pytest.fixture
def workspace(tmp_path):
    """Empty SAGA workspace directory"""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def sample_dem(tmp_path):
    """Create a 20x20 DEM (10 m cells, projected CRS) with a valley and a hill"""
    height, width = 20, 20
    rows, cols = np.mgrid[0:height, 0:width]
    elevation = 100.0 + 2.0 * np.abs(cols - 10) + 0.5 * rows
    elevation[3:6, 3:6] += 25.0  # Hill

    dem_path = tmp_path / "dem.tif"
    with rasterio.open(
        dem_path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float32",
        crs="EPSG:3067",
        transform=from_origin(500000.0, 7000200.0, 10.0, 10.0),
        nodata=-9999.0,
    ) as dst:
        dst.write(elevation.astype(np.float32), 1)

    return dem_path


@pytest.fixture
def saga_env(workspace):
    """SAGA environment with an explicit executable and core count"""
    return SagaEnvironment(workspace=workspace, path="saga_cmd", cores=2)


@pytest.fixture
def mock_saga_run():
    """Mock saga_cmd: every call succeeds without producing files"""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = Mock(
            returncode=0,
            stdout="SAGA tool finished",
            stderr="",
        )
        yield mock_run


@pytest.fixture
def mock_saga_writes_grids():
    """Mock saga_cmd that creates every .sgrd named on the command line"""

    def fake_run(command, cwd=None, **kwargs):
        for argument in command[4:]:
            if argument.endswith(".sgrd"):
                (Path(cwd) / argument).touch()
        return Mock(returncode=0, stdout="SAGA tool finished", stderr="")

    with patch("subprocess.run", side_effect=fake_run) as mock_run:
        yield mock_run


def touch_grid(workspace: Path, name: str, extensions=(".sgrd", ".sdat", ".mgrd")) -> None:
    """Create empty SAGA grid files in the workspace"""
    for extension in extensions:
        (workspace / f"{name}{extension}").touch()


def tool_calls(mock_run) -> List[Tuple[str, str]]:
    """(library, tool) pairs in call order"""
    return [(c.args[0][2], c.args[0][3]) for c in mock_run.call_args_list]


def tool_params(mock_run, library: str, tool_id: str) -> Dict[str, str]:
    """Parameters of the first call to a given tool"""
    for c in mock_run.call_args_list:
        command = c.args[0]
        if command[2] == library and command[3] == tool_id:
            pairs = command[4:]
            return {pairs[i].lstrip("-"): pairs[i + 1] for i in range(0, len(pairs), 2)}
    raise AssertionError(f"{library} {tool_id} was not called")
